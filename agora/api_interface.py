from typing import Any, Dict, List, Optional, Tuple
import re

import requests
from requests import Session

from .auth_config import (
    LISTING_CONDITIONS,
    LISTING_DESCRIPTION_MIN,
    LISTING_STATUSES,
    LISTING_TITLE_MAX,
    LISTING_TITLE_MIN,
    MIN_PASSWORD_LENGTH,
    SEARCH_SUGGESTION_MIN,
    THREAD_CONTENT_MIN,
    THREAD_TITLE_MAX,
    THREAD_TITLE_MIN,
    load_settings,
)
from .auth_storage import TokenStore
from .data_models import (
    Category,
    Conversation,
    MarketplaceCategory,
    MarketplaceListing,
    Message,
    Notification,
    Post,
    SearchResult,
    Thread,
    User,
)
from .errors import ApiError, AuthError, NetworkError, NotFoundError, ValidationError
from .log import get_logger
from .normalize import unwrap_item, unwrap_list

logger = get_logger("agora.api")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# Gateway failures mean the backend itself is unreachable
_UNREACHABLE_STATUSES = (502, 503, 504)


# === client-side validation, run before any network call ===
def _check_email(email: str) -> str:
    email = (email or "").strip()
    if not _EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address")
    return email


def _check_password(password: str) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def _check_length(label: str, value: str, min_len: int, max_len: int | None = None) -> str:
    value = (value or "").strip()
    if len(value) < min_len:
        raise ValidationError(f"{label} must be at least {min_len} characters")
    if max_len is not None and len(value) > max_len:
        raise ValidationError(f"{label} must be less than {max_len} characters")
    return value


def _check_required(label: str, value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Please select a {label}" if label == "category" else f"Please enter a {label}")
    return value


def _check_listing_fields(fields: Dict[str, Any]) -> None:
    if "title" in fields:
        fields["title"] = _check_length("Title", fields["title"], LISTING_TITLE_MIN, LISTING_TITLE_MAX)
    if "description" in fields:
        fields["description"] = _check_length("Description", fields["description"], LISTING_DESCRIPTION_MIN)
    if fields.get("price") is not None:
        try:
            price = float(fields["price"])
        except (TypeError, ValueError):
            raise ValidationError("Please enter a price")
        if price < 0:
            raise ValidationError("Price cannot be negative")
        fields["price"] = price
    if fields.get("condition") is not None and fields["condition"] not in LISTING_CONDITIONS:
        raise ValidationError(f"Condition must be one of: {', '.join(LISTING_CONDITIONS)}")
    if fields.get("status") is not None and fields["status"] not in LISTING_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(LISTING_STATUSES)}")


def _error_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or default
    return default


def _auth_payload(body: Any) -> Tuple[User, str]:
    """Pull {user, token} out of a login/register/refresh response."""
    payload = body
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        payload = body["data"]
    if not isinstance(payload, dict):
        raise AuthError("Malformed authentication response")
    token = payload.get("token") or payload.get("accessToken") or payload.get("access_token")
    user = payload.get("user")
    if not token or not isinstance(user, dict):
        raise AuthError(_error_message(payload, "Malformed authentication response"))
    return User.from_api(user), token


class APIInterface:
    # auth
    def login(self, email: str, password: str) -> Tuple[User, str]: ...
    def register(self, email: str, password: str, username: Optional[str] = None) -> Dict[str, Any]: ...
    def refresh(self) -> Tuple[User, str]: ...
    def logout(self) -> None: ...
    def me(self, token: Optional[str] = None) -> User: ...
    # forum
    def get_categories(self) -> List[Category]: ...
    def get_category(self, slug: str) -> Category: ...
    def get_threads(self, category_id: Optional[str] = None) -> List[Thread]: ...
    def get_thread(self, thread_id: str) -> Thread: ...
    def create_thread(self, title: str, content: str, category_id: str) -> Thread: ...
    def get_posts(self, thread_id: str) -> List[Post]: ...
    def create_post(self, thread_id: str, content: str, reply_to: Optional[str] = None) -> Post: ...
    # marketplace
    def get_listings(self, **filters: Any) -> List[MarketplaceListing]: ...
    def get_listing(self, listing_id: str) -> MarketplaceListing: ...
    # messages / notifications / search
    def get_conversations(self, limit: int = 50) -> List[Conversation]: ...
    def get_notifications(self, unread_only: bool = False, limit: int = 50) -> List[Notification]: ...
    def search(self, q: str, type: Optional[str] = None, limit: int = 20) -> List[SearchResult]: ...


class ForumAPI(APIInterface):
    """API client that talks to the forum's HTTP backend.

    It expects a base_url like https://api.example.com/api. The bearer
    token is read from the token store on every request, so a sign-in or
    sign-out is picked up without touching the client.
    """
    def __init__(
        self,
        base_url: str,
        store: Optional[TokenStore] = None,
        timeout: float = 15.0,
        session: Optional[Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.store = store or TokenStore()
        self.session: Session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_settings(cls, store: Optional[TokenStore] = None) -> "ForumAPI":
        settings = load_settings()
        return cls(settings.api_url, store=store, timeout=settings.timeout)

    # --- helpers ---
    def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json_payload: Dict[str, Any] | None = None,
        token: Optional[str] = None,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {}
        token = token or self.store.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            resp = self.session.request(
                method, url, params=params or None, json=json_payload, headers=headers, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise NetworkError(f"Request to {path} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise NetworkError(f"Could not reach backend: {e}") from e

        logger.debug("%s %s -> HTTP %s", method, path, resp.status_code)

        try:
            body = resp.json() if resp.content else None
        except ValueError:
            # HTML error page or other non-JSON body
            if resp.status_code == 401:
                raise AuthError("Not authenticated", status=401)
            if resp.status_code == 404:
                raise NotFoundError(f"{path} not found", status=404)
            raise NetworkError(f"Non-JSON response from {path} (HTTP {resp.status_code})", status=resp.status_code)

        if resp.status_code == 401:
            raise AuthError(_error_message(body, "Not authenticated"), status=401)
        if resp.status_code == 404:
            raise NotFoundError(_error_message(body, f"{path} not found"), status=404)
        if resp.status_code in _UNREACHABLE_STATUSES:
            raise NetworkError(_error_message(body, "Backend unavailable"), status=resp.status_code)
        if not resp.ok:
            raise ApiError(_error_message(body, f"HTTP {resp.status_code}"), status=resp.status_code)
        return body

    def _get(self, path: str, params: Dict[str, Any] | None = None, token: Optional[str] = None) -> Any:
        return self._request("GET", path, params=params, token=token)

    def _post(self, path: str, json_payload: Dict[str, Any] | None = None) -> Any:
        return self._request("POST", path, json_payload=json_payload)

    def _put(self, path: str, json_payload: Dict[str, Any] | None = None) -> Any:
        return self._request("PUT", path, json_payload=json_payload)

    def _patch(self, path: str, json_payload: Dict[str, Any] | None = None) -> Any:
        return self._request("PATCH", path, json_payload=json_payload)

    def _delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    def _list(self, path: str, key: str, params: Dict[str, Any] | None = None) -> List[Dict[str, Any]]:
        """GET a list endpoint; outages and missing parents degrade to []."""
        try:
            body = self._get(path, params=params)
        except (NetworkError, NotFoundError) as e:
            logger.error("Error fetching %s from %s: %s", key, path, e)
            return []
        return unwrap_list(body, key)

    # --- auth ---
    def login(self, email: str, password: str) -> Tuple[User, str]:
        payload = {"email": _check_email(email), "password": _check_password(password)}
        try:
            body = self._post("/auth/login", json_payload=payload)
        except ApiError as e:
            if e.status in (400, 403, 422):
                raise AuthError(e.message, status=e.status) from e
            raise
        return _auth_payload(body)

    def register(self, email: str, password: str, username: Optional[str] = None) -> Dict[str, Any]:
        payload = {"email": _check_email(email), "password": _check_password(password)}
        if username:
            payload["username"] = username.strip()
        return self._post("/auth/register", json_payload=payload) or {}

    def refresh(self) -> Tuple[User, str]:
        return _auth_payload(self._post("/auth/refresh"))

    def logout(self) -> None:
        self._post("/auth/logout")

    def me(self, token: Optional[str] = None) -> User:
        """Fetch the user the given (or stored) token belongs to."""
        body = self._get("/auth/me", token=token)
        return User.from_api(unwrap_item(body, "user"))

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self._post("/auth/forgot-password", json_payload={"email": _check_email(email)}) or {}

    def reset_password(self, token: str, password: str) -> Dict[str, Any]:
        _check_required("reset token", token)
        payload = {"token": token, "password": _check_password(password)}
        return self._post("/auth/reset-password", json_payload=payload) or {}

    def verify_email(self, token: str) -> Dict[str, Any]:
        _check_required("verification token", token)
        return self._post("/auth/verify-email", json_payload={"token": token}) or {}

    def resend_verification(self, email: str) -> Dict[str, Any]:
        return self._post("/auth/resend-verification", json_payload={"email": _check_email(email)}) or {}

    # --- categories / threads / posts ---
    def get_categories(self) -> List[Category]:
        return [Category.from_api(c) for c in self._list("/categories", "categories")]

    def get_category(self, slug: str) -> Category:
        _check_required("category", slug)
        return Category.from_api(unwrap_item(self._get(f"/categories/{slug}"), "category"))

    def get_threads(self, category_id: Optional[str] = None) -> List[Thread]:
        params = {"categoryId": category_id} if category_id else None
        return [Thread.from_api(t) for t in self._list("/threads", "threads", params=params)]

    def get_thread(self, thread_id: str) -> Thread:
        _check_required("thread id", thread_id)
        return Thread.from_api(unwrap_item(self._get(f"/threads/{thread_id}"), "thread"))

    def create_thread(self, title: str, content: str, category_id: str) -> Thread:
        payload = {
            "title": _check_length("Title", title, THREAD_TITLE_MIN, THREAD_TITLE_MAX),
            "content": _check_length("Content", content, THREAD_CONTENT_MIN),
            "categoryId": _check_required("category", category_id),
        }
        return Thread.from_api(unwrap_item(self._post("/threads", json_payload=payload), "thread"))

    def get_posts(self, thread_id: str) -> List[Post]:
        return [Post.from_api(p) for p in self._list(f"/threads/{thread_id}/posts", "posts")]

    def create_post(self, thread_id: str, content: str, reply_to: Optional[str] = None) -> Post:
        _check_required("thread id", thread_id)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Reply cannot be empty")
        payload = {"content": content, "threadId": thread_id}
        if reply_to:
            payload["replyToId"] = reply_to
        return Post.from_api(unwrap_item(self._post("/posts", json_payload=payload), "post"))

    # --- users ---
    def get_user(self, user_id: str) -> User:
        _check_required("user id", user_id)
        return User.from_api(unwrap_item(self._get(f"/users/{user_id}"), "user"))

    def update_user(self, user_id: str, **fields: Any) -> User:
        _check_required("user id", user_id)
        if "email" in fields:
            fields["email"] = _check_email(fields["email"])
        return User.from_api(unwrap_item(self._put(f"/users/{user_id}", json_payload=fields), "user"))

    # --- marketplace ---
    def get_listings(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        location: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[MarketplaceListing]:
        params = {
            "category": category or None,
            "search": search or None,
            "minPrice": min_price,
            "maxPrice": max_price,
            "location": location or None,
            "page": page,
            "limit": limit,
        }
        return [MarketplaceListing.from_api(item) for item in self._list("/marketplace/listings", "listings", params=params)]

    def get_listing(self, listing_id: str) -> MarketplaceListing:
        _check_required("listing id", listing_id)
        body = self._get(f"/marketplace/listings/{listing_id}")
        return MarketplaceListing.from_api(unwrap_item(body, "listing"))

    def create_listing(
        self,
        title: str,
        description: str,
        price: float,
        category: str,
        location: str,
        condition: Optional[str] = None,
        images: Optional[List[str]] = None,
        tags: Optional[List[str]] = None,
    ) -> MarketplaceListing:
        _check_required("price", price)
        _check_required("category", category)
        _check_required("location", location)
        fields: Dict[str, Any] = {
            "title": title,
            "description": description,
            "price": price,
            "category": category,
            "location": location.strip(),
            "condition": condition,
            "images": images or [],
            "tags": tags or [],
        }
        _check_listing_fields(fields)
        if fields["condition"] is None:
            del fields["condition"]
        body = self._post("/marketplace/listings", json_payload=fields)
        return MarketplaceListing.from_api(unwrap_item(body, "listing"))

    def update_listing(self, listing_id: str, **fields: Any) -> MarketplaceListing:
        _check_required("listing id", listing_id)
        _check_listing_fields(fields)
        body = self._put(f"/marketplace/listings/{listing_id}", json_payload=fields)
        return MarketplaceListing.from_api(unwrap_item(body, "listing"))

    def delete_listing(self, listing_id: str) -> bool:
        _check_required("listing id", listing_id)
        self._delete(f"/marketplace/listings/{listing_id}")
        return True

    def get_my_listings(self) -> List[MarketplaceListing]:
        return [MarketplaceListing.from_api(item) for item in self._list("/marketplace/my-listings", "listings")]

    def mark_listing_sold(self, listing_id: str) -> MarketplaceListing:
        _check_required("listing id", listing_id)
        body = self._patch(f"/marketplace/listings/{listing_id}/sold")
        return MarketplaceListing.from_api(unwrap_item(body, "listing"))

    def toggle_favorite(self, listing_id: str) -> bool:
        """Toggle the favorite flag; returns the new state when the backend reports it."""
        _check_required("listing id", listing_id)
        body = self._post(f"/marketplace/listings/{listing_id}/favorite")
        if not isinstance(body, dict):
            body = {}
        if isinstance(body.get("data"), dict):
            body = body["data"]
        return bool(body.get("isFavorited", body.get("favorited", True)))

    def get_favorite_listings(self) -> List[MarketplaceListing]:
        return [MarketplaceListing.from_api(item) for item in self._list("/marketplace/favorites", "listings")]

    def report_listing(self, listing_id: str, reason: str, description: Optional[str] = None) -> bool:
        _check_required("listing id", listing_id)
        _check_required("reason", reason)
        self._post(f"/marketplace/listings/{listing_id}/report", json_payload={"reason": reason, "description": description})
        return True

    def get_marketplace_categories(self) -> List[MarketplaceCategory]:
        return [MarketplaceCategory.from_api(c) for c in self._list("/marketplace/categories", "categories")]

    def contact_seller(self, listing_id: str, message: str) -> Dict[str, Any]:
        _check_required("listing id", listing_id)
        if not (message or "").strip():
            raise ValidationError("Message cannot be empty")
        return self._post(f"/marketplace/listings/{listing_id}/contact", json_payload={"message": message.strip()}) or {}

    # --- messages ---
    def get_conversations(self, limit: int = 50) -> List[Conversation]:
        rows = self._list("/messages/conversations", "conversations", params={"limit": limit})
        return [Conversation.from_api(c) for c in rows]

    def get_conversation_messages(self, conversation_id: str, limit: int = 50) -> List[Message]:
        rows = self._list(f"/messages/conversations/{conversation_id}", "messages", params={"limit": limit})
        return [Message.from_api(m) for m in rows]

    def send_message(self, conversation_id: str, content: str) -> Message:
        _check_required("conversation id", conversation_id)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message cannot be empty")
        body = self._post("/messages", json_payload={"conversationId": conversation_id, "content": content})
        return Message.from_api(unwrap_item(body, "message"))

    def mark_conversation_read(self, conversation_id: str) -> bool:
        self._put(f"/messages/conversations/{conversation_id}/read")
        return True

    def delete_conversation(self, conversation_id: str) -> bool:
        self._delete(f"/messages/conversations/{conversation_id}")
        return True

    # --- notifications ---
    def get_notifications(self, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        params = {"unreadOnly": "true" if unread_only else None, "limit": limit}
        return [Notification.from_api(n) for n in self._list("/notifications", "notifications", params=params)]

    def get_unread_count(self) -> int:
        try:
            body = self._get("/notifications/unread-count")
        except (NetworkError, NotFoundError) as e:
            logger.error("Error loading unread count: %s", e)
            return 0
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        if isinstance(body, dict):
            try:
                return int(body.get("count") or 0)
            except (TypeError, ValueError):
                return 0
        return 0

    def mark_notification_read(self, notification_id: str) -> bool:
        self._put(f"/notifications/{notification_id}/read")
        return True

    def mark_all_notifications_read(self) -> bool:
        self._put("/notifications/read-all")
        return True

    def delete_notification(self, notification_id: str) -> bool:
        self._delete(f"/notifications/{notification_id}")
        return True

    # --- search ---
    def search(self, q: str, type: Optional[str] = None, limit: int = 20) -> List[SearchResult]:
        q = (q or "").strip()
        if not q:
            return []
        params = {"q": q, "type": None if type in (None, "all") else type, "limit": limit}
        return [SearchResult.from_api(r) for r in self._list("/search", "results", params=params)]

    def search_suggestions(self, q: str) -> List[str]:
        q = (q or "").strip()
        if len(q) < SEARCH_SUGGESTION_MIN:
            return []
        try:
            body = self._get("/search/suggestions", params={"q": q})
        except (NetworkError, NotFoundError) as e:
            logger.error("Error getting suggestions: %s", e)
            return []
        if isinstance(body, dict):
            body = body.get("suggestions") if isinstance(body.get("suggestions"), list) else body.get("data")
        if not isinstance(body, list):
            return []
        return [s for s in body if isinstance(s, str)]

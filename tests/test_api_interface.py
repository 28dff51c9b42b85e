from __future__ import annotations

import pytest
import requests

from agora.data_models import Category, MarketplaceListing, Thread
from agora.errors import ApiError, AuthError, NetworkError, NotFoundError, ValidationError

THREADS = [
    {"id": "t1", "title": "Welcome", "categoryId": "c1", "isPinned": True, "viewCount": 10, "postCount": 2},
    {"id": "t2", "title": "Rules", "categoryId": "c1"},
]


@pytest.mark.parametrize(
    "body",
    [
        [{"id": "c1", "name": "General"}],
        {"categories": [{"id": "c1", "name": "General"}]},
        {"data": [{"id": "c1", "name": "General"}]},
        {"success": True, "data": [{"id": "c1", "name": "General"}]},
    ],
)
def test_get_categories_accepts_every_envelope(api, backend, body):
    backend.add("GET", "/categories", body=body)
    categories = api.get_categories()
    assert categories == [Category(id="c1", name="General")]


def test_get_categories_keeps_subcategories(api, backend):
    backend.add(
        "GET",
        "/categories",
        body={"categories": [{"id": "c1", "name": "Tech", "subcategories": [{"id": "c2", "name": "Python", "parentId": "c1"}]}]},
    )
    [tech] = api.get_categories()
    assert [s.name for s in tech.subcategories] == ["Python"]
    assert tech.subcategories[0].parent_id == "c1"


def test_get_threads_filters_by_category(api, backend):
    backend.add("GET", "/threads", body={"threads": THREADS})
    threads = api.get_threads("c1")
    assert [t.id for t in threads] == ["t1", "t2"]
    assert threads[0].is_pinned and threads[0].view_count == 10
    assert backend.calls[0].params == {"categoryId": "c1"}


def test_threads_for_missing_category_is_empty_list(api, backend):
    backend.add("GET", "/threads", status=404, body={"message": "Category not found"})
    assert api.get_threads("nope") == []


def test_threads_list_degrades_on_network_failure(api, backend):
    backend.fail("GET", "/threads", requests.ConnectionError("refused"))
    assert api.get_threads() == []


def test_threads_list_degrades_on_gateway_error(api, backend):
    backend.add("GET", "/threads", status=503, raw="<html>Service Unavailable</html>")
    assert api.get_threads() == []


def test_get_thread_missing_raises_not_found(api, backend):
    backend.add("GET", "/threads/missing", status=404, body={"message": "Thread not found"})
    with pytest.raises(NotFoundError) as exc:
        api.get_thread("missing")
    assert not isinstance(exc.value, NetworkError)
    assert exc.value.message == "Thread not found"


def test_get_thread_unreachable_raises_network_error(api, backend):
    backend.fail("GET", "/threads/t1", requests.ConnectionError("refused"))
    with pytest.raises(NetworkError):
        api.get_thread("t1")


def test_get_thread_unwraps_envelope(api, backend):
    backend.add("GET", "/threads/t1", body={"success": True, "thread": THREADS[0]})
    thread = api.get_thread("t1")
    assert isinstance(thread, Thread)
    assert thread.title == "Welcome"


def test_timeout_becomes_network_error(api, backend):
    backend.fail("GET", "/threads/t1", requests.Timeout("slow"))
    with pytest.raises(NetworkError):
        api.get_thread("t1")


def test_timeout_is_passed_to_requests(api, backend):
    backend.add("GET", "/categories", body=[])
    api.get_categories()
    assert backend.calls[0].timeout == 10.0


def test_html_error_page_is_network_error(api, backend):
    backend.add("GET", "/threads/t1", status=500, raw="<html><body>Internal error</body></html>")
    with pytest.raises(NetworkError):
        api.get_thread("t1")


def test_other_error_status_is_api_error(api, backend):
    backend.add("POST", "/posts", status=409, body={"message": "Thread is locked"})
    with pytest.raises(ApiError) as exc:
        api.create_post("t1", "hello there")
    assert exc.value.status == 409
    assert exc.value.message == "Thread is locked"


def test_bearer_token_comes_from_store(api, backend, store):
    backend.add("GET", "/categories", body=[])
    api.get_categories()
    assert "Authorization" not in backend.calls[0].headers

    store.save("tok-1", {"id": "u1", "email": "a@example.com"})
    api.get_categories()
    assert backend.calls[1].headers["Authorization"] == "Bearer tok-1"


def test_locked_keyring_sends_requests_without_token(api, backend, memory_keyring):
    memory_keyring.locked = True
    backend.add("GET", "/categories", body=[{"id": "1", "name": "General"}])
    assert api.get_categories() == [Category(id="1", name="General")]
    assert "Authorization" not in backend.calls[0].headers


def test_login_returns_user_and_token(api, backend, user_payload):
    backend.add("POST", "/auth/login", body={"success": True, "data": {"user": user_payload, "token": "tok-1"}})
    user, token = api.login("a@example.com", "secret123")
    assert token == "tok-1"
    assert user.email == "a@example.com"
    assert user.role == "moderator"
    assert user.avatar_url == "https://cdn.test/a.png"


@pytest.mark.parametrize("status", [400, 401])
def test_login_rejected_is_auth_error(api, backend, status):
    backend.add("POST", "/auth/login", status=status, body={"message": "Invalid credentials"})
    with pytest.raises(AuthError) as exc:
        api.login("a@example.com", "wrong-password")
    assert exc.value.message == "Invalid credentials"


@pytest.mark.parametrize(
    "email,password",
    [("", "secret123"), ("not-an-email", "secret123"), ("a@example.com", "123")],
)
def test_login_validates_before_network(api, backend, email, password):
    with pytest.raises(ValidationError):
        api.login(email, password)
    assert backend.calls == []


@pytest.mark.parametrize(
    "title,content,category",
    [
        ("Hey", "This content is long enough to pass", "c1"),
        ("x" * 101, "This content is long enough to pass", "c1"),
        ("A fine title", "too short", "c1"),
        ("A fine title", "This content is long enough to pass", ""),
    ],
)
def test_create_thread_validates_before_network(api, backend, title, content, category):
    with pytest.raises(ValidationError):
        api.create_thread(title, content, category)
    assert backend.calls == []


def test_create_thread_posts_payload(api, backend):
    backend.add("POST", "/threads", status=201, body={"thread": {"id": "t9", "title": "A fine title"}})
    thread = api.create_thread("A fine title", "This content is long enough to pass", "c1")
    assert thread.id == "t9"
    assert backend.calls[0].json == {
        "title": "A fine title",
        "content": "This content is long enough to pass",
        "categoryId": "c1",
    }


def test_get_posts_drops_malformed(api, backend):
    backend.add("GET", "/threads/t1/posts", body={"posts": [{"id": "p1", "content": "hi"}, {"content": "no id"}]})
    posts = api.get_posts("t1")
    assert [p.id for p in posts] == ["p1"]


def test_get_listings_sends_camel_case_filters(api, backend):
    backend.add(
        "GET",
        "/marketplace/listings",
        body={"listings": [{"id": "l1", "title": "Bike", "price": "120.5", "condition": "good"}]},
    )
    listings = api.get_listings(search="bike", min_price=50, page=2)
    assert listings == [MarketplaceListing(id="l1", title="Bike", price=120.5, condition="good")]
    assert backend.calls[0].params == {"search": "bike", "minPrice": 50, "page": 2}


def test_create_listing_rejects_unknown_condition(api, backend):
    with pytest.raises(ValidationError):
        api.create_listing(
            "Road bike",
            "Barely used road bike, size 56, with pedals",
            300,
            "sports",
            "Berlin",
            condition="broken",
        )
    assert backend.calls == []


def test_create_listing_rejects_negative_price(api, backend):
    with pytest.raises(ValidationError):
        api.create_listing("Road bike", "Barely used road bike, size 56, with pedals", -1, "sports", "Berlin")


def test_update_listing_status(api, backend):
    backend.add("PUT", "/marketplace/listings/l1", body={"listing": {"id": "l1", "title": "Bike", "status": "sold"}})
    listing = api.update_listing("l1", status="sold")
    assert listing.status == "sold"
    assert backend.calls[0].json == {"status": "sold"}


def test_get_listing_missing_raises(api, backend):
    with pytest.raises(NotFoundError):
        api.get_listing("nope")


def test_favorites_and_my_listings_use_listing_key(api, backend):
    backend.add("GET", "/marketplace/favorites", body={"data": [{"id": "l1", "title": "Bike"}]})
    backend.add("GET", "/marketplace/my-listings", body=[{"id": "l2", "title": "Desk"}, {"id": "l3"}])
    assert [x.id for x in api.get_favorite_listings()] == ["l1"]
    assert [x.id for x in api.get_my_listings()] == ["l2"]


def test_toggle_favorite_reports_state(api, backend):
    backend.add("POST", "/marketplace/listings/l1/favorite", body={"success": True, "data": {"isFavorited": False}})
    assert api.toggle_favorite("l1") is False


def test_toggle_favorite_tolerates_list_body(api, backend):
    backend.add("POST", "/marketplace/listings/l1/favorite", body=[{"id": "l1"}])
    assert api.toggle_favorite("l1") is True


def test_send_message_rejects_blank(api, backend):
    with pytest.raises(ValidationError):
        api.send_message("c1", "   ")
    assert backend.calls == []


def test_conversation_messages(api, backend):
    backend.add(
        "GET",
        "/messages/conversations/c1",
        body={"messages": [{"id": "m1", "content": "hi", "sender": {"id": "u2", "email": "b@example.com"}}]},
    )
    [msg] = api.get_conversation_messages("c1")
    assert msg.sender.email == "b@example.com"
    assert backend.calls[0].params == {"limit": 50}


def test_notifications_unread_only(api, backend):
    backend.add("GET", "/notifications", body={"notifications": [{"id": "n1", "type": "reply", "message": "New reply"}]})
    [n] = api.get_notifications(unread_only=True)
    assert n.type == "reply" and n.read is False
    assert backend.calls[0].params == {"unreadOnly": "true", "limit": 50}


def test_unread_count(api, backend):
    backend.add("GET", "/notifications/unread-count", body={"count": 3})
    assert api.get_unread_count() == 3


def test_unread_count_degrades_to_zero(api, backend):
    backend.fail("GET", "/notifications/unread-count", requests.ConnectionError("down"))
    assert api.get_unread_count() == 0


def test_mark_notification_read_uses_put(api, backend):
    backend.add("PUT", "/notifications/n1/read", body={"success": True})
    assert api.mark_notification_read("n1") is True


def test_search_returns_highlights(api, backend):
    backend.add(
        "GET",
        "/search",
        body={"results": [{"type": "thread", "id": "t1", "title": "Welcome", "highlights": ["<em>wel</em>come"]}]},
    )
    [hit] = api.search("wel")
    assert hit.highlights == ["<em>wel</em>come"]
    assert backend.calls[0].params == {"q": "wel", "limit": 20}


def test_blank_search_makes_no_call(api, backend):
    assert api.search("   ") == []
    assert api.search_suggestions("a") == []
    assert backend.calls == []


def test_search_suggestions(api, backend):
    backend.add("GET", "/search/suggestions", body={"suggestions": ["python", "pytest", 3]})
    assert api.search_suggestions("py") == ["python", "pytest"]


def test_me_uses_explicit_token(api, backend, store, user_payload):
    store.save("stored", {"id": "u1", "email": "a@example.com"})
    backend.add("GET", "/auth/me", body={"user": user_payload})
    api.me(token="explicit")
    assert backend.calls[0].headers["Authorization"] == "Bearer explicit"


def test_me_with_rejected_token(api, backend):
    backend.add("GET", "/auth/me", status=401, body={"message": "Token expired"})
    with pytest.raises(AuthError):
        api.me(token="old")

"""
Session handling: who is signed in, kept in the system keyring and
revalidated against the backend in the background.
"""
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from keyring.errors import KeyringError

from .api_interface import ForumAPI
from .auth_storage import TokenStore
from .data_models import User
from .errors import AgoraError, ApiError, AuthError
from .log import get_logger

logger = get_logger("agora.auth")

AuthListener = Callable[[Optional[User]], None]


class Session:
    """Process-wide view of the current user.

    Reads are answered from the cached snapshot without waiting on the
    network. Each read while signed in schedules a revalidation of the
    token it saw; only an explicit auth rejection downgrades the session,
    and a result for a token that has since been replaced is ignored.
    """

    def __init__(self, api: Optional[ForumAPI] = None, store: Optional[TokenStore] = None):
        self.store = store or (api.store if api is not None else TokenStore())
        self.api = api or ForumAPI.from_settings(store=self.store)
        self._lock = threading.Lock()
        self._listeners: List[AuthListener] = []
        self._loaded = False
        self._token: Optional[str] = None
        self._user: Optional[User] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="agora-revalidate")
        self._pending: Optional[Future] = None
        self._pending_token: Optional[str] = None

    # --- signal ---
    def subscribe(self, callback: AuthListener) -> Callable[[], None]:
        """Register callback(user_or_None); returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: AuthListener) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _emit(self, user: Optional[User]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(user)
            except Exception:
                logger.exception("auth state listener %r failed", callback)

    # --- local state ---
    def _load_locked(self) -> None:
        try:
            found = self.store.load()
        except KeyringError:
            logger.exception("Could not read stored session")
            found = None
        if found:
            self._token, snapshot = found
            self._user = User.from_api(snapshot)
        else:
            self._token, self._user = None, None
        self._loaded = True

    def _set_locked(self, token: Optional[str], user: Optional[User]) -> None:
        self._token, self._user = token, user
        self._loaded = True

    def _clear_local(self, expected_token: Optional[str] = None) -> bool:
        """Drop the session; with expected_token, only if it is still the active one."""
        with self._lock:
            if expected_token is not None and self._token != expected_token:
                return False
            self._set_locked(None, None)
            try:
                self.store.clear()
            except KeyringError:
                logger.exception("Failed to clear stored session")
        return True

    def _store_locked(self, token: str, user: User) -> None:
        """Persist and adopt the pair. A failed write leaves the store empty, so memory follows."""
        try:
            self.store.save(token, user.to_snapshot())
        except KeyringError:
            self._set_locked(None, None)
            raise
        self._set_locked(token, user)

    def _persist_or_drop(self, token: str, user: User) -> None:
        try:
            with self._lock:
                self._store_locked(token, user)
        except KeyringError:
            self._emit(None)
            raise

    # --- public API ---
    def sign_in(self, email: str, password: str) -> User:
        user, token = self.api.login(email, password)
        self._persist_or_drop(token, user)
        logger.debug("Signed in as %s", user.email)
        self._emit(user)
        return user

    def sign_up(self, email: str, password: str, username: Optional[str] = None) -> Dict[str, Any]:
        return self._wrap(lambda: self.api.register(email, password, username), "Failed to create account")

    def sign_out(self) -> None:
        """Tell the backend (best-effort), then always drop local credentials."""
        try:
            if self.store.get_token():
                self.api.logout()
        except (AgoraError, KeyringError) as e:
            logger.error("Logout error: %s", e)
        finally:
            self._clear_local()
            self._emit(None)

    def refresh(self) -> User:
        """Trade the current token for a fresh one."""
        try:
            user, token = self.api.refresh()
        except AuthError:
            self._clear_local()
            self._emit(None)
            raise
        self._persist_or_drop(token, user)
        self._emit(user)
        return user

    def current_user(self, revalidate: bool = True) -> Optional[User]:
        """Return the cached user, or None when no token is stored."""
        with self._lock:
            if not self._loaded:
                self._load_locked()
            token, user = self._token, self._user
        if token is None:
            return None
        if revalidate:
            self._schedule_revalidation(token)
        return user

    def get_session_token(self) -> Optional[Dict[str, str]]:
        with self._lock:
            if not self._loaded:
                self._load_locked()
            token = self._token
        return {"access_token": token} if token else None

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self._wrap(lambda: self.api.forgot_password(email), "Failed to send reset email")

    def reset_password(self, token: str, password: str) -> Dict[str, Any]:
        return self._wrap(lambda: self.api.reset_password(token, password), "Failed to reset password")

    def verify_email(self, token: str) -> Dict[str, Any]:
        return self._wrap(lambda: self.api.verify_email(token), "Failed to verify email")

    def resend_verification(self, email: str) -> Dict[str, Any]:
        return self._wrap(lambda: self.api.resend_verification(email), "Failed to resend verification")

    def wait_for_revalidation(self, timeout: Optional[float] = None) -> None:
        """Block until the pending background revalidation (if any) settles."""
        with self._lock:
            pending = self._pending
        if pending is not None:
            pending.result(timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # --- revalidation ---
    def _wrap(self, call: Callable[[], Dict[str, Any]], fallback: str) -> Dict[str, Any]:
        try:
            return call()
        except ApiError as e:
            raise AuthError(e.message or fallback, status=e.status) from e

    def _schedule_revalidation(self, token: str) -> None:
        with self._lock:
            if self._pending is not None and not self._pending.done() and self._pending_token == token:
                return
            self._pending_token = token
            self._pending = self._executor.submit(self._revalidate, token)

    def _revalidate(self, token: str) -> None:
        try:
            fresh = self.api.me(token=token)
        except AuthError as e:
            if not self._clear_local(expected_token=token):
                logger.debug("Discarding stale revalidation result")
                return
            logger.warning("Stored session rejected by backend (%s); signed out", e)
            self._emit(None)
            return
        except AgoraError as e:
            # Backend unreachable or misbehaving: keep the optimistic snapshot
            logger.warning("Session revalidation failed, keeping cached user: %s", e)
            return

        with self._lock:
            if self._token != token:
                logger.debug("Discarding stale revalidation result")
                return
            changed = fresh != self._user
            if changed:
                try:
                    self._store_locked(token, fresh)
                except KeyringError:
                    logger.exception("Failed to persist refreshed user snapshot; signing out")
                    fresh = None
        if changed:
            self._emit(fresh)


_session: Optional[Session] = None
_session_lock = threading.Lock()


def get_session() -> Session:
    """Return the process-wide Session, creating it on first use."""
    global _session
    with _session_lock:
        if _session is None:
            _session = Session()
        return _session

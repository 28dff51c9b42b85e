"""Session persistence helpers for agora.

The bearer token and the current-user snapshot are kept in the system
keyring under fixed names (``authToken`` and ``currentUser``). They are
always written and cleared together: a token without a snapshot, or a
snapshot without a token, counts as no session at all.
"""

from __future__ import annotations

import base64
import json
from typing import Optional, Tuple

import keyring
from keyring.errors import KeyringError

from .auth_config import KEYRING_SERVICE, TOKEN_KEY, USER_KEY
from .log import get_logger

# Size of each chunk in bytes when splitting large values for keyring storage.
# Keep this conservative to avoid per-credential limits on Windows Credential Manager.
_CHUNK_SIZE = 1000

logger = get_logger("agora.auth_storage")


class TokenStore:
    """Keyring-backed store for the bearer token and user snapshot."""

    def __init__(self, service: str = KEYRING_SERVICE):
        self.service = service

    # --- chunked values ---
    def _store_chunked_value(self, key_base: str, value: str) -> None:
        """Store a potentially-large string by splitting it into base64-encoded
        chunks under keys {key_base}.part{i}, with the part count stored at
        {key_base}.parts.
        """
        self._delete_chunked_value(key_base)

        data = value.encode("utf-8")
        # Try progressively smaller chunk sizes until the backend accepts one.
        sizes_to_try = [_CHUNK_SIZE, 512, 256, 128]
        last_exc: Exception | None = None
        for chunk_size in sizes_to_try:
            parts = [data[i : i + chunk_size] for i in range(0, len(data), chunk_size)]
            written_parts = []
            try:
                for idx, part in enumerate(parts):
                    b64 = base64.b64encode(part).decode("ascii")
                    part_key = f"{key_base}.part{idx}"
                    keyring.set_password(self.service, part_key, b64)
                    written_parts.append(part_key)
                keyring.set_password(self.service, f"{key_base}.parts", str(len(parts)))
                logger.debug("auth_storage: stored %s in %d chunk(s) (chunk_size=%d)", key_base, len(parts), chunk_size)
                return
            except KeyringError as e:
                last_exc = e
                logger.debug("auth_storage: chunked write with chunk_size=%d failed: %s", chunk_size, e)
                for pk in written_parts:
                    self._delete_quietly(pk)
                self._delete_quietly(f"{key_base}.parts")

        logger.error("auth_storage: all chunked write attempts failed for %s", key_base)
        raise last_exc or KeyringError("failed to store chunked value")

    def _read_chunked_value(self, key_base: str) -> Optional[str]:
        count_s = keyring.get_password(self.service, f"{key_base}.parts")
        if not count_s:
            return None
        try:
            count = int(count_s)
        except ValueError:
            logger.debug("auth_storage: invalid parts index for %s: %r", key_base, count_s)
            return None

        parts = []
        for i in range(count):
            b64 = keyring.get_password(self.service, f"{key_base}.part{i}")
            if b64 is None:
                # missing part -> treat as corruption
                logger.debug("auth_storage: missing chunk %s.part%d", key_base, i)
                return None
            parts.append(base64.b64decode(b64.encode("ascii")))
        return b"".join(parts).decode("utf-8")

    def _delete_chunked_value(self, key_base: str) -> None:
        count_s = keyring.get_password(self.service, f"{key_base}.parts")
        if not count_s:
            return
        try:
            count = int(count_s)
        except ValueError:
            count = 0
        for i in range(count):
            self._delete_quietly(f"{key_base}.part{i}")
        self._delete_quietly(f"{key_base}.parts")

    def _delete_quietly(self, key: str) -> None:
        try:
            keyring.delete_password(self.service, key)
        except KeyringError:
            # entry not present
            pass

    # --- public API ---
    def get_token(self) -> Optional[str]:
        try:
            return keyring.get_password(self.service, TOKEN_KEY)
        except KeyringError:
            logger.exception("auth_storage: failed to read %s from keyring", TOKEN_KEY)
            return None

    def save(self, token: str, snapshot: dict) -> None:
        """Persist the token and the serialized user snapshot."""
        blob = json.dumps(snapshot)
        try:
            keyring.set_password(self.service, TOKEN_KEY, token)
            try:
                keyring.set_password(self.service, USER_KEY, blob)
                self._delete_chunked_value(USER_KEY)
            except KeyringError:
                logger.debug("auth_storage: single %s write failed; attempting chunked storage", USER_KEY)
                self._delete_quietly(USER_KEY)
                self._store_chunked_value(USER_KEY, blob)
        except KeyringError:
            logger.exception("auth_storage: failed to write session to keyring")
            self.clear()
            raise
        logger.debug("auth_storage: wrote session to keyring")

    def load(self) -> Optional[Tuple[str, dict]]:
        """Return (token, snapshot) or None when either half is missing."""
        token = self.get_token()
        if not token:
            return None
        blob = keyring.get_password(self.service, USER_KEY) or self._read_chunked_value(USER_KEY)
        if not blob:
            return None
        try:
            snapshot = json.loads(blob)
        except ValueError:
            logger.warning("auth_storage: stored %s is not valid JSON; clearing session", USER_KEY)
            self.clear()
            return None
        if not isinstance(snapshot, dict):
            self.clear()
            return None
        return token, snapshot

    def clear(self) -> None:
        """Remove token and snapshot together (best-effort)."""
        for key in (TOKEN_KEY, USER_KEY):
            self._delete_quietly(key)
        try:
            self._delete_chunked_value(USER_KEY)
        except KeyringError:
            logger.exception("auth_storage: failed to remove chunked %s", USER_KEY)

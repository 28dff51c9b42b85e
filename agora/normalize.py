"""Unwrap backend response envelopes.

The backend wraps payloads inconsistently across endpoints: a bare array,
``{"categories": [...]}``, ``{"data": [...]}`` or ``{"success": true,
"data": [...]}``. Every list call goes through ``unwrap_list`` so callers
always get a concrete list back.
"""
from typing import Any, Dict, Iterable, List, Sequence

from .errors import NotFoundError
from .log import get_logger

logger = get_logger("agora.normalize")

# Fields an entry must carry to be handed to calling code
REQUIRED_FIELDS: Dict[str, Sequence[str]] = {
    "categories": ("id", "name"),
    "threads": ("id", "title"),
    "posts": ("id",),
    "listings": ("id", "title"),
    "favorites": ("id", "title"),
    "conversations": ("id",),
    "messages": ("id",),
    "notifications": ("id",),
    "results": ("id",),
}


def _shape(body: Any) -> str:
    if isinstance(body, dict):
        return "object with keys %s" % sorted(body.keys())
    return type(body).__name__


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _is_valid(entry: Any, required: Iterable[str]) -> bool:
    if not isinstance(entry, dict):
        return False
    for name in required:
        value = entry.get(name)
        if value is None or value == "":
            return False
    return True


def unwrap_list(body: Any, key: str, required: Sequence[str] | None = None) -> List[Dict[str, Any]]:
    """Extract the list of ``key`` items from a response body of unknown shape.

    Precedence, first match wins: the body itself is a list; ``body[key]``
    is a list; ``body["data"]`` is a list. Anything else yields ``[]``.
    Entries missing a required field are dropped.
    """
    if _is_sequence(body):
        items = body
    elif isinstance(body, dict) and _is_sequence(body.get(key)):
        items = body[key]
    elif isinstance(body, dict) and _is_sequence(body.get("data")):
        items = body["data"]
    else:
        logger.warning("unwrap_list: no %r list in response (%s)", key, _shape(body))
        return []

    if required is None:
        required = REQUIRED_FIELDS.get(key, ("id",))
    valid = [item for item in items if _is_valid(item, required)]
    dropped = len(items) - len(valid)
    if dropped:
        logger.debug("unwrap_list: dropped %d malformed %s entr%s", dropped, key, "y" if dropped == 1 else "ies")
    return valid


def unwrap_item(body: Any, key: str) -> Dict[str, Any]:
    """Extract a single ``key`` object: ``body[key]``, then ``body["data"]``, then the body itself."""
    if isinstance(body, dict):
        if body.get("success") is False:
            raise NotFoundError(body.get("message") or body.get("error") or f"{key} not found")
        if isinstance(body.get(key), dict):
            return body[key]
        if isinstance(body.get("data"), dict):
            return body["data"]
        if body:
            return body
    raise NotFoundError(f"{key} not found in response ({_shape(body)})")

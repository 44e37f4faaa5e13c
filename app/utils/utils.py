from datetime import datetime, timezone
from typing import Any, Optional


def get_field(obj: Any, *path, default: Any = None) -> Any:
    """Walk a path of keys through Stripe objects or plain dicts.

    Returns ``default`` as soon as a step is missing or ``None``.
    """
    current = obj
    for key in path:
        if current is None:
            return default
        try:
            current = current[key]
        except (KeyError, TypeError, IndexError):
            return default
    return default if current is None else current


def timestamp_to_iso(value: Optional[int]) -> Optional[str]:
    """Convert a Unix timestamp (seconds) into an ISO-8601 UTC string"""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

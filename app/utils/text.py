from typing import Any, Optional


def safe(value: Optional[str]) -> str:
    return "" if value is None else str(value).strip()


def normalize_category(text: Optional[str]) -> str:
    """Trimmed, lowercased join key between request text and catalog entries.

    Request categories and menu lookups must both go through this function,
    otherwise matches silently fail.
    """
    return safe(text).lower()


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        return int(value)
    return default


def as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    return default

"""Time-ordered identifiers.

Ids start with the creation time in milliseconds (fixed-width hex) followed by
random hex, so sorting ids lexicographically sorts them by creation time and
ties within one millisecond stay unique.
"""
import time
import uuid


def time_ordered_id(prefix: str = "", random_chars: int = 8) -> str:
    millis = int(time.time() * 1000)
    return f"{prefix}{millis:012x}{uuid.uuid4().hex[:random_chars]}"


def new_request_id() -> str:
    return time_ordered_id("req_")


def new_order_id() -> str:
    # ord_ + 12 time chars + 4 random chars
    return time_ordered_id("ord_", random_chars=4)

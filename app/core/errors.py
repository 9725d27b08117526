"""Error kinds raised by the marketplace core.

Every error carries a stable ``code`` that outer layers (REST handlers,
websocket sessions) use to pick an outward signal. Nothing downstream should
parse ``message``.
"""
from typing import Optional


class MarketplaceError(Exception):
    code = "ERROR"

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None):
        self.code = code or self.code
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self):
        return {"code": self.code, "message": self.message}


class ValidationError(MarketplaceError):
    """Missing or blank input. Raised before any store call."""
    code = "VALIDATION_ERROR"


class NotFoundError(MarketplaceError):
    code = "NOT_FOUND"


class ConflictError(MarketplaceError):
    """The record already moved past the attempted transition."""
    code = "CONFLICT"


class AlreadyBoughtError(ConflictError):
    code = "ALREADY_BOUGHT"


class SlotsFullError(ConflictError):
    code = "SLOTS_FULL"


class DuplicateOfferError(ConflictError):
    code = "DUPLICATE_OFFER"


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"


class DocumentExistsError(ConflictError):
    code = "ALREADY_EXISTS"


class TransientStoreError(MarketplaceError):
    """Transport or commit failure. Nothing was applied; safe to retry."""
    code = "STORE_UNAVAILABLE"


class TransactionConflictError(TransientStoreError):
    code = "TRANSACTION_CONFLICT"


class StoreTimeoutError(TransientStoreError):
    code = "STORE_TIMEOUT"


class InternalError(MarketplaceError):
    code = "INTERNAL_ERROR"

# Overview: Domain error taxonomy shared by services and routes.
"""
Every service failure is a PosError subclass.

Each class carries a stable machine-readable ``code`` (what clients switch on)
and the HTTP status the API answers with. Routes never build error payloads by
hand; they call ``to_dict()``.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for expected, user-facing failures."""

    code = "POS_ERROR"
    http_status = 400
    title = "Error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(PosError, ValueError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class ConflictError(PosError):
    """409-level business rule conflict."""
    code = "CONFLICT"
    http_status = 409


class NotFoundError(PosError):
    code = "NOT_FOUND"
    http_status = 404


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class UserNotFound(NotFoundError):
    code = "USER_NOT_FOUND"


class SaleNotFound(NotFoundError):
    code = "SALE_NOT_FOUND"


class DuplicateName(ConflictError):
    code = "DUPLICATE_NAME"


class DuplicateUsername(ConflictError):
    code = "DUPLICATE_USERNAME"


class InsufficientStock(ConflictError):
    code = "INSUFFICIENT_STOCK"


class LastAdminProtection(ConflictError):
    code = "LAST_ADMIN_PROTECTION"


class DefaultAdminProtection(PosError):
    code = "DEFAULT_ADMIN_PROTECTION"
    http_status = 403


class AlreadyReturned(ConflictError):
    code = "ALREADY_RETURNED"
    title = "Info"


class NothingToReturn(ValidationError):
    code = "NOTHING_TO_RETURN"


class DiscountExceedsProfit(ValidationError):
    """An admin sale whose discount is larger than its profit."""
    code = "DISCOUNT_EXCEEDS_PROFIT"
    title = "Discount not accepted"


class OutOfStock(ConflictError):
    code = "OUT_OF_STOCK"


class CannotExceedStock(ConflictError):
    code = "CANNOT_EXCEED_STOCK"


class ExceedsStock(ConflictError):
    code = "EXCEEDS_STOCK"


class InvalidCredentials(PosError):
    code = "INVALID_CREDENTIALS"
    http_status = 401


class NotAuthenticated(PosError):
    code = "NOT_AUTHENTICATED"
    http_status = 401


class PermissionDenied(PosError):
    code = "PERMISSION_DENIED"
    http_status = 403


class InvalidBackupFormat(ValidationError):
    code = "INVALID_BACKUP_FORMAT"


class StorageAccessError(PosError):
    """Read, write or parse failure against a persisted slot."""
    code = "STORAGE_ACCESS_FAILURE"
    http_status = 503


class StockInconsistency(PosError):
    """
    Stock changed between checkout validation and the decrement.

    Fatal for the sale being recorded: nothing from it is kept.
    """
    code = "STOCK_INCONSISTENCY"
    http_status = 500
    title = "Fatal error"

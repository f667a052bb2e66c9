# Overview: Typed failures raised by the settlement services; each maps to one HTTP status.

from __future__ import annotations


class SaleError(Exception):
    """
    Base class for settlement failures.

    Raising any SaleError inside a unit of work rolls the whole transaction
    back; routes turn it into {"error", "code", "details"} with status_code.
    """
    code = "SALE_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(SaleError):
    """Malformed or inconsistent request."""
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(SaleError):
    code = "NOT_FOUND"
    status_code = 404


class InsufficientStock(SaleError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class InvalidPaymentSplit(SaleError):
    code = "INVALID_PAYMENT_SPLIT"
    status_code = 400


class ReturnWindowExpired(SaleError):
    code = "RETURN_WINDOW_EXPIRED"
    status_code = 400


class ReturnQuantityExceeded(SaleError):
    code = "RETURN_QUANTITY_EXCEEDED"
    status_code = 409


class AlreadyVoided(SaleError):
    code = "ALREADY_VOIDED"
    status_code = 409


class Unauthorized(SaleError):
    code = "UNAUTHORIZED"
    status_code = 403


class InsufficientPoints(SaleError):
    code = "INSUFFICIENT_POINTS"
    status_code = 409

# Overview: Error taxonomy shared by services and routes.

"""
Every error raised by the ledger services derives from LedgerError.

Routes turn a LedgerError into:
    {"error": <message>, "code": <code>, "details": {...}}, <status_code>

Propagation rule: services never catch a LedgerError to keep going. The
enclosing unit of work is rolled back by run_with_retry before the error
reaches the caller.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger/sale/shift errors."""

    status_code = 400
    code = "ledger_error"

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


class ValidationError(LedgerError):
    """Malformed request; rejected before any write."""

    status_code = 400
    code = "validation_error"


class PaymentMismatchError(ValidationError):
    """Sum of tendered payments differs from the computed sale total."""

    code = "payment_mismatch"


class InsufficientStockError(LedgerError):
    """A SALE (or transfer-out) would drive quantity_on_hand below zero."""

    status_code = 409
    code = "insufficient_stock"


class AlreadyVoidedError(LedgerError):
    status_code = 409
    code = "already_voided"


class NotFoundError(LedgerError):
    status_code = 404
    code = "not_found"


class ConflictError(LedgerError):
    """State machine violation (e.g. second open shift, shift not open)."""

    status_code = 409
    code = "conflict"


class TransientStoreError(LedgerError):
    """
    The store aborted the unit of work (lock timeout, deadlock, lost
    connection, unexpected constraint violation). Nothing was applied; the
    whole operation may be retried from scratch.
    """

    status_code = 503
    code = "transient_store_error"

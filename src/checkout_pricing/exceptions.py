"""
Checkout pricing exceptions.

Every exception carries:
- code: machine-readable error code (e.g. "rate_out_of_range")
- message: human-readable message
- context: extra data about the failure
"""

from __future__ import annotations


class PricingError(Exception):
    """
    Base class for all checkout pricing errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable message
        context: Extra data about the error
    """

    def __init__(self, code: str = "error", message: str = "", context: dict | None = None):
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ConfigurationError(PricingError):
    """
    Malformed or out-of-range configuration value.

    Never aborts loading: the value is clamped or the row skipped, and the
    error is logged.

    Codes: "rate_out_of_range", "invalid_row", "invalid_limits", "invalid_option"
    """


class ResolutionError(PricingError):
    """
    Customer profile unavailable; the cart is priced as non-VIP.

    Codes: "profile_missing", "profile_lookup_failed"
    """


class StageError(PricingError):
    """
    Unexpected exception raised inside a pipeline stage.

    Codes: "stage_failed"
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(
            code="stage_failed",
            message=f"{stage} failed: {cause}",
            context={"stage": stage, "error_type": type(cause).__name__},
        )
        self.stage = stage
        self.cause = cause


class ReentrancyRejected(PricingError):
    """
    Pipeline already running for this cart; the triggering call is dropped.

    Codes: "already_running"
    """


class LedgerError(PricingError):
    """
    Adjustment set rejected by the ledger; prior contents are retained.

    Codes: "duplicate_name", "invalid_record"
    """

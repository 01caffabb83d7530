"""
LexLedger Practice Billing
Service-layer exceptions

Routers translate these into HTTP errors; the services themselves never
import FastAPI.
"""
from typing import List, Optional


class LexLedgerError(Exception):
    """Base class for all billing domain errors"""


class ValidationError(LexLedgerError):
    """Input rejected before any state change or network call"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class RateCardValidationError(ValidationError):
    pass


class TimesheetValidationError(ValidationError):
    pass


class InvoiceValidationError(ValidationError):
    pass


class PartnerShareError(ValidationError):
    pass


class CurrencyMismatchError(LexLedgerError):
    """Arithmetic attempted across two different currencies"""

    def __init__(self, left: str, right: str):
        super().__init__(f"Cannot combine {left} and {right} amounts without an explicit conversion")
        self.left = left
        self.right = right


class ConversionError(LexLedgerError):
    """A currency conversion could not be performed"""

    def __init__(self, message: str, missing_rates: Optional[List[str]] = None,
                 invalid_rates: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_rates = missing_rates or []
        self.invalid_rates = invalid_rates or []


class RequestSuperseded(LexLedgerError):
    """A newer request for the same key replaced this one"""

    def __init__(self, key: str):
        super().__init__(f"Request '{key}' was superseded by a newer request")
        self.key = key

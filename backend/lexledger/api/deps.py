"""
LexLedger Practice Billing
Shared router dependencies and error translation
"""
from typing import Optional
from fastapi import Header, HTTPException

from lexledger.services.capabilities import Capabilities
from lexledger.services.currency_service import CurrencyService, currency_service
from lexledger.services.errors import (
    ConversionError,
    CurrencyMismatchError,
    LexLedgerError,
    ValidationError,
)


def get_currency_service() -> CurrencyService:
    return currency_service


def get_capabilities(x_user_role: Optional[str] = Header(None)) -> Capabilities:
    """Role comes from the X-User-Role header; sessions are handled upstream"""
    return Capabilities.for_role(x_user_role)


def http_error(exc: LexLedgerError) -> HTTPException:
    """Map a service error onto the HTTP status the UI expects"""
    if isinstance(exc, ConversionError):
        detail = {"message": str(exc)}
        if exc.missing_rates or exc.invalid_rates:
            detail["missing_rates"] = exc.missing_rates
            detail["invalid_rates"] = exc.invalid_rates
        return HTTPException(status_code=502, detail=detail)
    if isinstance(exc, ValidationError):
        detail = {"message": exc.message}
        if exc.field:
            detail["field"] = exc.field
        return HTTPException(status_code=400, detail=detail)
    if isinstance(exc, CurrencyMismatchError):
        return HTTPException(status_code=400, detail={"message": str(exc)})
    return HTTPException(status_code=500, detail={"message": str(exc)})

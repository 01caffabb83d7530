"""
LexLedger Practice Billing
Currency API Router - Rates, Conversion, Rate Table Validation
"""
from typing import List
from fastapi import APIRouter, Depends, Query

from lexledger.api.deps import get_currency_service, http_error
from lexledger.schemas.billing_schemas import (
    CurrencyInfoResponse, ExchangeRateResponse, ConvertRequest, ConvertResponse,
    ConvertBatchRequest, ConvertBatchResponse, OfflineConvertRequest, OfflineConvertResponse,
    RateValidationRequest, RateValidationResponse
)
from lexledger.services.currency_service import CurrencyService, convert_offline, validate_exchange_rates
from lexledger.services.errors import ConversionError, LexLedgerError
from lexledger.services.money import CURRENCY_INFO, format_currency, parse_currency

router = APIRouter()


@router.get("/currencies", response_model=List[CurrencyInfoResponse])
async def list_currencies():
    """Supported billing currencies"""
    return [
        CurrencyInfoResponse(code=code.value, symbol=info.symbol, name=info.name, precision=info.precision)
        for code, info in CURRENCY_INFO.items()
    ]


@router.get("/rate", response_model=ExchangeRateResponse)
async def get_exchange_rate(
    from_currency: str = Query(..., alias="from"),
    to_currency: str = Query(..., alias="to"),
    service: CurrencyService = Depends(get_currency_service)
):
    """Live exchange rate between two currencies"""
    try:
        rate = await service.get_rate(from_currency, to_currency)
    except LexLedgerError as e:
        raise http_error(e)
    return ExchangeRateResponse(
        from_currency=rate.from_currency.value,
        to_currency=rate.to_currency.value,
        rate=rate.rate,
        as_of=rate.as_of,
    )


@router.post("/convert", response_model=ConvertResponse)
async def convert_amount(
    request: ConvertRequest,
    service: CurrencyService = Depends(get_currency_service)
):
    """Convert an amount with a live rate"""
    try:
        converted = await service.convert(request.amount, request.from_currency, request.to_currency)
        target = parse_currency(request.to_currency)
    except LexLedgerError as e:
        raise http_error(e)
    return ConvertResponse(
        amount=request.amount,
        from_currency=parse_currency(request.from_currency).value,
        to_currency=target.value,
        converted_amount=converted,
        formatted=format_currency(converted, target),
    )


@router.post("/convert-batch", response_model=ConvertBatchResponse)
async def convert_batch(
    request: ConvertBatchRequest,
    service: CurrencyService = Depends(get_currency_service)
):
    """
    Convert several rows concurrently.

    Each row succeeds or fails on its own; failures are listed under errors.
    """
    try:
        target = parse_currency(request.to_currency)
        rows = {key: (row.amount, parse_currency(row.currency)) for key, row in request.rows.items()}
    except LexLedgerError as e:
        raise http_error(e)

    converted = await service.convert_many(rows, target)
    response = ConvertBatchResponse(to_currency=target.value)
    for key, result in converted.items():
        if isinstance(result, ConversionError):
            response.errors[key] = str(result)
        else:
            response.results[key] = result
    return response


@router.post("/convert-offline", response_model=OfflineConvertResponse)
async def convert_with_rate_table(request: OfflineConvertRequest):
    """Convert with a caller supplied rate table; falls back to the original amount"""
    try:
        result = convert_offline(request.amount, request.from_currency, request.to_currency, request.rate_table)
    except LexLedgerError as e:
        raise http_error(e)
    return OfflineConvertResponse(
        amount=result.amount,
        currency=result.currency.value,
        converted=result.converted,
        rate=result.rate,
    )


@router.post("/validate-rates", response_model=RateValidationResponse)
async def validate_rate_table(request: RateValidationRequest):
    try:
        result = validate_exchange_rates(request.currencies, request.rate_table, request.target_currency)
    except LexLedgerError as e:
        raise http_error(e)
    return RateValidationResponse(
        is_valid=result.is_valid,
        missing_rates=result.missing_rates,
        invalid_rates=result.invalid_rates,
        errors=result.errors,
    )

"""
LexLedger Practice Billing
Pydantic Schemas for Currency, Rate Card, Timesheet and Invoice APIs
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict

from lexledger.services.invoice_service import InvoiceStatus, DiscountType

# Timesheet models have a field called "date"
EntryDate = date


class MoneyOut(BaseModel):
    amount: Decimal
    currency: str


# ============================================================
# CURRENCY SCHEMAS
# ============================================================

class CurrencyInfoResponse(BaseModel):
    code: str
    symbol: str
    name: str
    precision: int


class ExchangeRateResponse(BaseModel):
    from_currency: str
    to_currency: str
    rate: Decimal
    as_of: datetime


class ConvertRequest(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str


class ConvertResponse(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    converted_amount: Decimal
    formatted: str


class ConvertRow(BaseModel):
    amount: Decimal
    currency: str


class ConvertBatchRequest(BaseModel):
    """Convert several rows independently; failures are reported per row"""
    rows: Dict[str, ConvertRow]
    to_currency: str


class ConvertBatchResponse(BaseModel):
    to_currency: str
    results: Dict[str, Decimal] = {}
    errors: Dict[str, str] = {}


class OfflineConvertRequest(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    rate_table: Optional[Dict[str, Any]] = None


class OfflineConvertResponse(BaseModel):
    amount: Decimal
    currency: str
    converted: bool
    rate: Optional[Decimal] = None


class RateValidationRequest(BaseModel):
    currencies: List[str]
    target_currency: str
    rate_table: Optional[Dict[str, Any]] = None


class RateValidationResponse(BaseModel):
    is_valid: bool
    missing_rates: List[str] = []
    invalid_rates: List[str] = []
    errors: List[str] = []


# ============================================================
# RATE CARD SCHEMAS
# ============================================================

class RateCardCreate(BaseModel):
    """Rates are entered in INR"""
    user_id: int
    service_type: str = Field(..., min_length=1, max_length=100)
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None
    effective_date: date
    end_date: Optional[date] = None
    allow_empty_rates: bool = False


class RateCardUpdate(BaseModel):
    """Inline edit; only the fields sent are applied"""
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None
    effective_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class RateCardResponse(BaseModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    service_type: str
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None
    suggested_rate: Optional[Decimal] = None
    currency: str = "INR"
    effective_date: date
    end_date: Optional[date] = None
    is_active: bool


class ResolvedRateResponse(BaseModel):
    ratecard_id: Optional[int] = None
    has_rate_card: bool
    has_rates: bool = False
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None
    suggested_rate: Optional[Decimal] = None
    original_currency: str = "INR"
    target_currency: str
    conversion_rate: Optional[Decimal] = None


# ============================================================
# TIMESHEET SCHEMAS
# ============================================================

class ExpenseCreate(BaseModel):
    """Expense amounts are always INR"""
    category: str = Field(..., min_length=1, max_length=100)
    sub_category: Optional[str] = None
    description: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    vendor: Optional[str] = None
    expense_included: bool = True


class ExpenseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category: str
    sub_category: Optional[str] = None
    description: Optional[str] = None
    amount: Decimal
    currency: str = "INR"
    vendor: Optional[str] = None
    expense_included: bool
    status: Optional[str] = None


class ExpenseInclusionUpdate(BaseModel):
    expense_id: int
    included: bool


class TimesheetCreate(BaseModel):
    user_id: int
    matter_id: Optional[int] = None
    date: EntryDate
    billable_minutes: int = 0
    non_billable_minutes: int = 0
    activity_type: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    hourly_rate_currency: Optional[str] = None  # defaults to the matter currency
    expenses: List[ExpenseCreate] = []


class TimesheetUpdate(BaseModel):
    date: Optional[EntryDate] = None
    billable_minutes: Optional[int] = None
    non_billable_minutes: Optional[int] = None
    activity_type: Optional[str] = None
    description: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    hourly_rate_currency: Optional[str] = None


class TimesheetAmountsResponse(BaseModel):
    """Time charge (matter currency) and expense totals (INR) are never summed"""
    billable_hours: Decimal
    non_billable_hours: Decimal
    total_hours: Decimal
    time_charge: Optional[MoneyOut] = None
    accepted_expense_total: MoneyOut
    rejected_expense_total: MoneyOut
    accepted_count: int
    rejected_count: int
    has_mixed_currencies: bool


class TimesheetResponse(BaseModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    matter_id: Optional[int] = None
    matter_title: Optional[str] = None
    matter_currency: str
    date: EntryDate
    billable_minutes: int
    non_billable_minutes: int
    activity_type: str
    description: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    status: str
    approved_by: Optional[str] = None
    invoice_id: Optional[int] = None
    expenses: List[ExpenseResponse] = []
    amounts: TimesheetAmountsResponse


# ============================================================
# INVOICE SCHEMAS
# ============================================================

class DiscountIn(BaseModel):
    type: DiscountType
    value: Decimal


class PartnerShareIn(BaseModel):
    user_id: int
    percentage: Decimal


class InvoiceCreate(BaseModel):
    """
    Create an invoice from timesheets.

    Time charges and included expenses are bucketed by currency; buckets in
    another currency than the invoice need an entry in exchange_rates.
    """
    client_id: int
    matter_id: Optional[int] = None
    timesheet_ids: List[int] = []
    subtotal: Optional[Decimal] = None  # manual invoice without timesheets
    currency: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    discount: Optional[DiscountIn] = None
    exchange_rates: Optional[Dict[str, Decimal]] = None
    status: InvoiceStatus = InvoiceStatus.NEW
    billing_location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    partner_shares: List[PartnerShareIn] = []


class InvoiceLineUpdate(BaseModel):
    """Billed minutes/rate for one timesheet on a draft invoice"""
    timesheet_id: int
    billed_minutes: Optional[int] = None
    hourly_rate: Optional[Decimal] = None


class InvoiceUpdate(BaseModel):
    """
    Edit a draft invoice. Omitted fields keep their value; an explicit
    "discount": null removes the discount.
    """
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    discount: Optional[DiscountIn] = None
    exchange_rates: Optional[Dict[str, Decimal]] = None
    billing_location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    timesheets: List[InvoiceLineUpdate] = []


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class SplitIn(BaseModel):
    percentage: Decimal
    currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = None  # parent currency -> split currency


class InvoiceSplitRequest(BaseModel):
    splits: List[SplitIn] = Field(..., min_length=1)


class PaymentCreate(BaseModel):
    amount: Decimal
    payment_method: str
    payment_date: Optional[date] = None
    transaction_ref: Optional[str] = None
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    payment_date: date
    amount: Decimal
    currency: Optional[str] = None
    payment_method: str
    transaction_ref: Optional[str] = None
    notes: Optional[str] = None


class PartnerSharesUpdate(BaseModel):
    shares: List[PartnerShareIn]


class PartnerShareLineResponse(BaseModel):
    user_id: int
    user_name: Optional[str] = None
    percentage: Decimal
    amount: MoneyOut


class PartnerSplitResponse(BaseModel):
    shares: List[PartnerShareLineResponse]
    total_percentage: Decimal
    total_amount: MoneyOut
    is_complete: bool


class SplitLineResponse(BaseModel):
    invoice_id: Optional[int] = None
    invoice_number: str
    currency: str
    final_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    status: InvoiceStatus


class SplitSummaryResponse(BaseModel):
    """total_paid / total_due are only present when all splits share a currency"""
    splits: List[SplitLineResponse]
    paid_by_currency: Dict[str, Decimal]
    due_by_currency: Dict[str, Decimal]
    total_paid: Optional[MoneyOut] = None
    total_due: Optional[MoneyOut] = None


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    client_id: int
    client_name: Optional[str] = None
    matter_id: Optional[int] = None
    parent_invoice_id: Optional[int] = None
    invoice_date: date
    due_date: date
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    currency: str
    subtotal: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    final_amount: Decimal
    amount_paid: Decimal
    remaining: Dict[str, Decimal]
    status: InvoiceStatus
    display_status: InvoiceStatus
    is_parent: bool = False
    split_summary: Optional[SplitSummaryResponse] = None
    timesheet_ids: List[int] = []
    exchange_rates: Optional[Dict[str, Decimal]] = None
    billing_location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class InvoiceListResponse(BaseModel):
    items: List[InvoiceResponse]
    total: int

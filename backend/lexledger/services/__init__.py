"""
LexLedger Practice Billing
Services Module
"""
from lexledger.services.money import (
    CurrencyCode,
    Money,
    MoneyBuckets,
    format_currency,
    parse_currency,
)
from lexledger.services.errors import (
    LexLedgerError,
    ValidationError,
    ConversionError,
    CurrencyMismatchError,
)
from lexledger.services.currency_service import (
    currency_service,
    CurrencyService,
    HttpRateProvider,
    StaticRateProvider,
    LatestRequestGate,
    convert_offline,
    validate_exchange_rates,
)
from lexledger.services.rate_card_service import (
    RateCard,
    ResolvedRate,
    apply_rate_card_update,
    reconcile_rate_cards,
    resolve_rate_card,
    rate_card_in_currency,
)
from lexledger.services.timesheet_service import (
    Expense,
    TimesheetEntry,
    TimesheetAmounts,
    calculate_timesheet_amounts,
)
from lexledger.services.invoice_service import (
    InvoiceStatus,
    DiscountType,
    Discount,
    apply_discount,
    aggregate_subtotals,
    display_status,
    summarize_splits,
)
from lexledger.services.partner_share_service import (
    PartnerShare,
    PartnerSplit,
    calculate_partner_shares,
)
from lexledger.services.capabilities import Capabilities
from lexledger.services.workflow import StepRunner, WorkflowReport

__all__ = [
    # Money
    "CurrencyCode",
    "Money",
    "MoneyBuckets",
    "format_currency",
    "parse_currency",

    # Errors
    "LexLedgerError",
    "ValidationError",
    "ConversionError",
    "CurrencyMismatchError",

    # Currency
    "currency_service",
    "CurrencyService",
    "HttpRateProvider",
    "StaticRateProvider",
    "LatestRequestGate",
    "convert_offline",
    "validate_exchange_rates",

    # Rate cards
    "RateCard",
    "ResolvedRate",
    "apply_rate_card_update",
    "reconcile_rate_cards",
    "resolve_rate_card",
    "rate_card_in_currency",

    # Timesheets
    "Expense",
    "TimesheetEntry",
    "TimesheetAmounts",
    "calculate_timesheet_amounts",

    # Invoices
    "InvoiceStatus",
    "DiscountType",
    "Discount",
    "apply_discount",
    "aggregate_subtotals",
    "display_status",
    "summarize_splits",

    # Partner shares
    "PartnerShare",
    "PartnerSplit",
    "calculate_partner_shares",

    # Roles & workflows
    "Capabilities",
    "StepRunner",
    "WorkflowReport",
]

"""
LexLedger Practice Billing
API Routers Module
"""
from lexledger.api.crm import router as crm
from lexledger.api.currency import router as currency
from lexledger.api.rate_cards import router as rate_cards
from lexledger.api.timesheets import router as timesheets
from lexledger.api.invoices import router as invoices
from lexledger.api.exports import router as exports

__all__ = [
    "crm",
    "currency",
    "rate_cards",
    "timesheets",
    "invoices",
    "exports",
]

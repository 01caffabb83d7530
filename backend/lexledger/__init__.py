"""
LexLedger Practice Billing
Law-firm CRM, timesheet, rate card and multi-currency invoicing backend.
"""

__version__ = "1.4.0"

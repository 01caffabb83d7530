"""
LexLedger Practice Billing
Generators Module
Invoice document rendering and Word/PDF/tabular exports
"""

from .invoice_document import (
    InvoiceDocument,
    InvoiceDocumentData,
    render_invoice_document,
    format_matter_id,
)
from .docx_writer import write_docx
from .pdf_writer import write_pdf
from .tabular import export_timesheets, export_expenses

__all__ = [
    # Renderer
    'InvoiceDocument',
    'InvoiceDocumentData',
    'render_invoice_document',
    'format_matter_id',

    # Writers
    'write_docx',
    'write_pdf',
    'export_timesheets',
    'export_expenses',
]

"""
LexLedger Practice Billing
Exports API Router - Invoice documents (Word, PDF) and tabular line exports
"""
import io
import re
from dataclasses import asdict
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse, StreamingResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger.api.projections import document_data_from_invoice
from lexledger.db.database import get_db
from lexledger.db.models import Invoice
from lexledger.generators.docx_writer import write_docx
from lexledger.generators.invoice_document import InvoiceDocument, render_invoice_document
from lexledger.generators.pdf_writer import write_pdf
from lexledger.generators.tabular import FORMATS, export_expenses, export_timesheets

router = APIRouter()

DOCUMENT_TYPES = {
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "pdf": "application/pdf",
}

TABULAR_TYPES = {
    "csv": "text/csv",
    "tsv": "text/tab-separated-values",
    "txt": "text/plain",
}


async def _load_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    result = await db.execute(select(Invoice).where(Invoice.id == invoice_id))
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


def _safe_name(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "-", text).strip("-") or "invoice"


def _document_response(document: InvoiceDocument, fmt: str, stem: str):
    if fmt not in DOCUMENT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported format '{fmt}'. Use docx or pdf")
    content = write_docx(document) if fmt == "docx" else write_pdf(document)
    return StreamingResponse(
        io.BytesIO(content),
        media_type=DOCUMENT_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{_safe_name(stem)}.{fmt}"'},
    )


def _document_json(document: InvoiceDocument) -> Dict[str, Any]:
    return {
        "title": document.title,
        "sections": [
            {"key": s.key, "title": s.title, "blocks": [dict(asdict(b), kind=type(b).__name__.lower())
                                                         for b in s.blocks]}
            for s in document.sections
        ],
    }


@router.get("/invoices/{invoice_id}/document")
async def get_invoice_document(
    invoice_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Rendered invoice sections as JSON (what the Word export contains)"""
    invoice = await _load_invoice(db, invoice_id)
    return _document_json(render_invoice_document(document_data_from_invoice(invoice)))


@router.get("/invoices/{invoice_id}/timesheets.{fmt}")
async def export_invoice_timesheets(
    invoice_id: int,
    fmt: str,
    db: AsyncSession = Depends(get_db)
):
    """Timesheet lines of an invoice as CSV, TSV or a plain-text table"""
    if fmt not in FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported format '{fmt}'. Use csv, tsv or txt")
    data = document_data_from_invoice(await _load_invoice(db, invoice_id))
    return PlainTextResponse(export_timesheets(data.timesheet_entries, fmt), media_type=TABULAR_TYPES[fmt])


@router.get("/invoices/{invoice_id}/expenses.{fmt}")
async def export_invoice_expenses(
    invoice_id: int,
    fmt: str,
    db: AsyncSession = Depends(get_db)
):
    if fmt not in FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported format '{fmt}'. Use csv, tsv or txt")
    data = document_data_from_invoice(await _load_invoice(db, invoice_id))
    return PlainTextResponse(export_expenses(data.expense_entries, fmt), media_type=TABULAR_TYPES[fmt])


@router.get("/invoices/{invoice_id}.{fmt}")
async def export_invoice_document(
    invoice_id: int,
    fmt: str,
    db: AsyncSession = Depends(get_db)
):
    """Download the seven-section invoice as Word or PDF"""
    invoice = await _load_invoice(db, invoice_id)
    document = render_invoice_document(document_data_from_invoice(invoice))
    return _document_response(document, fmt, invoice.invoice_number)


@router.post("/render")
async def render_document(
    payload: Optional[Dict[str, Any]] = Body(None),
    format: str = Query("json", pattern="^(json|docx|pdf)$")
):
    """
    Render an arbitrary invoice payload.

    Accepts the same camelCase or snake_case fields as stored invoices;
    missing or malformed values are shown as placeholders.
    """
    document = render_invoice_document(payload)
    if format == "json":
        return _document_json(document)
    return _document_response(document, format, document.title)

"""
LexLedger Practice Billing
PDF writer for rendered invoice documents

The built-in PDF fonts only cover Latin-1, so currency symbols outside it
are written as their ISO codes.
"""
from pathlib import Path
from typing import List, Union

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from lexledger.generators.invoice_document import Heading, InvoiceDocument, Paragraph, Table

SYMBOL_REPLACEMENTS = {
    "₹": "INR ",
    "€": "EUR ",
    "د.إ": "AED ",
    "–": "-",
    "—": "-",
    "’": "'",
}

LINE_HEIGHT = 6
# Approximate width of one 8pt Helvetica character
CHAR_WIDTH_MM = 1.7


def pdf_text(text: str) -> str:
    for symbol, replacement in SYMBOL_REPLACEMENTS.items():
        text = text.replace(symbol, replacement)
    return text.encode("latin-1", errors="replace").decode("latin-1")


class InvoiceDocumentPDF(FPDF):
    def __init__(self, title: str):
        super().__init__()
        self.document_title = title
        self.set_auto_page_break(auto=True, margin=15)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.cell(0, 10, pdf_text(f"{self.document_title} - Page {self.page_no()}/{{nb}}"), align="C")

    def add_heading(self, heading: Heading):
        size = {0: 16, 1: 14}.get(heading.level, 11)
        self.set_font("Helvetica", "B", size)
        self.multi_cell(0, LINE_HEIGHT + 2, pdf_text(heading.text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.ln(2)

    def add_paragraph(self, paragraph: Paragraph):
        self.set_font("Helvetica", "B" if paragraph.bold else "", 10)
        align = {"center": "C", "right": "R"}.get(paragraph.align, "L")
        self.multi_cell(0, LINE_HEIGHT, pdf_text(paragraph.text), align=align, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.ln(1)

    def _row(self, cells: List[str], widths: List[float], bold: bool = False, fill: bool = False):
        self.set_font("Helvetica", "B" if bold else "", 8)
        for width, value in zip(widths, cells):
            text = pdf_text(value)
            limit = max(4, int(width / CHAR_WIDTH_MM))
            if len(text) > limit:
                text = text[:limit - 2] + ".."
            self.cell(width, LINE_HEIGHT, text, border=1, align="L", fill=fill)
        self.ln(LINE_HEIGHT)

    def add_table(self, table: Table):
        if table.title:
            self.set_font("Helvetica", "B", 10)
            self.cell(0, LINE_HEIGHT, pdf_text(table.title))
            self.ln(LINE_HEIGHT)

        widths = [self.epw / len(table.headers)] * len(table.headers)
        self.set_fill_color(240, 240, 240)
        self._row(table.headers, widths, bold=True, fill=True)
        for row in table.rows:
            self._row(row.cells, widths, bold=row.emphasis)
        self.ln(4)


def write_pdf(document: InvoiceDocument) -> bytes:
    """One page per section, same content as the Word export"""
    pdf = InvoiceDocumentPDF(document.title)
    pdf.set_title(pdf_text(document.title))

    for section in document.sections:
        pdf.add_page()
        for block in section.blocks:
            if isinstance(block, Heading):
                pdf.add_heading(block)
            elif isinstance(block, Paragraph):
                pdf.add_paragraph(block)
            elif isinstance(block, Table):
                pdf.add_table(block)

    return bytes(pdf.output())


def save_pdf(document: InvoiceDocument, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(write_pdf(document))
    return output_path

"""
LexLedger Practice Billing
Word (.docx) writer for rendered invoice documents
"""
import io
from pathlib import Path
from typing import Union

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt

from lexledger.generators.invoice_document import Heading, InvoiceDocument, Paragraph, Table

ALIGNMENTS = {
    "left": WD_ALIGN_PARAGRAPH.LEFT,
    "center": WD_ALIGN_PARAGRAPH.CENTER,
    "right": WD_ALIGN_PARAGRAPH.RIGHT,
}


def _add_table(doc, table: Table):
    if table.title:
        title = doc.add_paragraph()
        title.add_run(table.title).bold = True

    grid = doc.add_table(rows=1, cols=len(table.headers))
    grid.style = "Table Grid"
    for cell, header in zip(grid.rows[0].cells, table.headers):
        cell.text = ""
        cell.paragraphs[0].add_run(header).bold = True

    for row in table.rows:
        cells = grid.add_row().cells
        for cell, value in zip(cells, row.cells):
            cell.text = ""
            run = cell.paragraphs[0].add_run(value)
            run.bold = row.emphasis
    doc.add_paragraph("")


def build_docx(document: InvoiceDocument):
    """Build a python-docx Document, one page per section"""
    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(10)

    for index, section in enumerate(document.sections):
        if index:
            doc.add_page_break()
        for block in section.blocks:
            if isinstance(block, Heading):
                doc.add_heading(block.text, level=block.level)
            elif isinstance(block, Paragraph):
                p = doc.add_paragraph()
                p.add_run(block.text).bold = block.bold
                p.alignment = ALIGNMENTS.get(block.align, WD_ALIGN_PARAGRAPH.LEFT)
            elif isinstance(block, Table):
                _add_table(doc, block)

    doc.core_properties.title = document.title
    return doc


def write_docx(document: InvoiceDocument) -> bytes:
    buffer = io.BytesIO()
    build_docx(document).save(buffer)
    return buffer.getvalue()


def save_docx(document: InvoiceDocument, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(write_docx(document))
    return output_path

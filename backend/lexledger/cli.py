"""
lexledger - Terminal utility to:
  1) Render an invoice JSON/YAML export into Word/PDF (or plain text)
  2) Export timesheet and expense lines as CSV/TSV/plain text
  3) Convert amounts with a live rate or a JSON rate table
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import Mapping, Optional

import typer
import yaml

from lexledger.core.config import configure_logging
from lexledger.generators.docx_writer import save_docx
from lexledger.generators.invoice_document import InvoiceDocumentData, render_invoice_document
from lexledger.generators.pdf_writer import save_pdf
from lexledger.generators.tabular import FORMATS, export_expenses, export_timesheets
from lexledger.services.currency_service import convert_offline, currency_service
from lexledger.services.errors import LexLedgerError
from lexledger.services.money import format_currency

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="LexLedger helper: render invoices, export lines, convert currency.")


def _load_payload(path: Path):
    """Read an invoice or rate table from JSON, or YAML for .yaml/.yml files"""
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        typer.echo(f"Invalid input in {path}: {e}", err=True)
        raise typer.Exit(code=2)


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, help="Logging level, e.g. DEBUG.")):
    configure_logging(log_level)


@app.command("render-invoice")
def render_invoice(
    input_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Invoice JSON or YAML (camelCase or snake_case)."),
    fmt: str = typer.Option("docx", "--format", help="docx | pdf | txt"),
    output: Optional[Path] = typer.Option(None, help="Output file; defaults to the input name with the new suffix."),
):
    """
    Render the seven-section invoice document from a JSON file.
    """
    if fmt not in ("docx", "pdf", "txt"):
        typer.echo(f"Unsupported format: {fmt}", err=True)
        raise typer.Exit(code=2)

    document = render_invoice_document(_load_payload(input_path))
    output = output or input_path.with_suffix(f".{fmt}")
    if fmt == "docx":
        save_docx(document, output)
    elif fmt == "pdf":
        save_pdf(document, output)
    else:
        output.write_text(document.plain_text(), encoding="utf-8")
    logger.info("Rendered %s to %s", document.title, output)
    typer.echo(f"Wrote {output}")


@app.command("export-lines")
def export_lines(
    input_path: Path = typer.Argument(..., exists=True, dir_okay=False),
    kind: str = typer.Option("timesheets", help="timesheets | expenses"),
    fmt: str = typer.Option("csv", "--format", help="csv | tsv | txt"),
):
    """
    Print the timesheet or expense lines of an invoice JSON file.
    """
    if fmt not in FORMATS or kind not in ("timesheets", "expenses"):
        typer.echo("Use --kind timesheets|expenses and --format csv|tsv|txt", err=True)
        raise typer.Exit(code=2)

    data = InvoiceDocumentData.from_mapping(_load_payload(input_path))
    if kind == "timesheets":
        typer.echo(export_timesheets(data.timesheet_entries, fmt))
    else:
        typer.echo(export_expenses(data.expense_entries, fmt))


@app.command()
def convert(
    amount: str = typer.Argument(..., help="Amount to convert, e.g. 1500.50"),
    from_currency: str = typer.Argument(..., help="Source currency code."),
    to_currency: str = typer.Argument(..., help="Target currency code."),
    rates: Optional[Path] = typer.Option(None, exists=True, dir_okay=False,
                                         help='JSON rate table {"USD": 83.2} (rate to target); skips the live API.'),
):
    """
    Convert an amount with a live rate, or offline with a rate table.
    """
    rate_table = None
    if rates is not None:
        rate_table = _load_payload(rates)
        if not isinstance(rate_table, Mapping):
            typer.echo(f"Rate table in {rates} must map currency codes to rates", err=True)
            raise typer.Exit(code=2)

    try:
        if rate_table is not None:
            result = convert_offline(amount, from_currency, to_currency, rate_table)
            if not result.converted:
                typer.echo(f"No usable rate for {from_currency.upper()}; amount left unconverted", err=True)
                raise typer.Exit(code=1)
            typer.echo(format_currency(result.amount, result.currency))
            return

        converted = asyncio.run(currency_service.convert(amount, from_currency, to_currency))
        typer.echo(format_currency(converted, to_currency))
    except LexLedgerError as e:
        typer.echo(f"FAIL: {e}", err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()

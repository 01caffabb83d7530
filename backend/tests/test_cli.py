import json

from typer.testing import CliRunner

from lexledger.cli import app

runner = CliRunner()

INVOICE = {
    "invoiceNumber": "INV/2025-26/0010",
    "currency": "INR",
    "amount": "5000",
    "timesheetEntries": [
        {"date": "2026-01-05", "lawyerName": "Asha Rao", "lawyerRole": "Partner", "hours": "1",
         "hourlyRate": "5000", "fees": "5000", "currency": "INR", "matterId": 7, "clientCode": "12",
         "matterTitle": "Smith v Jones"},
    ],
}


def write_invoice(tmp_path):
    path = tmp_path / "invoice.json"
    path.write_text(json.dumps(INVOICE), encoding="utf-8")
    return path


def test_render_invoice_to_docx_and_text(tmp_path):
    source = write_invoice(tmp_path)

    result = runner.invoke(app, ["render-invoice", str(source)])
    assert result.exit_code == 0
    assert (tmp_path / "invoice.docx").read_bytes()[:2] == b"PK"

    out = tmp_path / "invoice.txt"
    result = runner.invoke(app, ["render-invoice", str(source), "--format", "txt", "--output", str(out)])
    assert result.exit_code == 0
    assert "Itemized Timesheet Entries" in out.read_text(encoding="utf-8")


def test_render_rejects_unknown_format(tmp_path):
    result = runner.invoke(app, ["render-invoice", str(write_invoice(tmp_path)), "--format", "odt"])
    assert result.exit_code == 2


def test_export_lines(tmp_path):
    result = runner.invoke(app, ["export-lines", str(write_invoice(tmp_path))])

    assert result.exit_code == 0
    assert '"0012-0007 - Smith v Jones"' in result.stdout


def test_invalid_json_exits_with_code_2(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    assert runner.invoke(app, ["export-lines", str(path)]).exit_code == 2


def test_offline_conversion(tmp_path):
    rates = tmp_path / "rates.json"
    rates.write_text(json.dumps({"USD": 83}), encoding="utf-8")

    result = runner.invoke(app, ["convert", "100", "usd", "INR", "--rates", str(rates)])
    assert result.exit_code == 0
    assert "₹8,300.00" in result.stdout

    missing = runner.invoke(app, ["convert", "100", "EUR", "INR", "--rates", str(rates)])
    assert missing.exit_code == 1


def test_rate_table_must_be_a_mapping(tmp_path):
    rates = tmp_path / "rates.yaml"
    rates.write_text("- USD\n- 83\n", encoding="utf-8")

    result = runner.invoke(app, ["convert", "100", "USD", "INR", "--rates", str(rates)])
    assert result.exit_code == 2


def test_yaml_invoice_input(tmp_path):
    source = tmp_path / "invoice.yaml"
    source.write_text(
        "invoiceNumber: INV/2025-26/0011\n"
        "currency: USD\n"
        "amount: '300'\n"
        "timesheetEntries:\n"
        "  - date: '2026-01-07'\n"
        "    lawyerName: Vikram Shah\n"
        "    hours: '2'\n"
        "    hourlyRate: '150'\n"
        "    fees: '300'\n"
        "    currency: USD\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["export-lines", str(source), "--format", "tsv"])
    assert result.exit_code == 0
    assert "Vikram Shah" in result.stdout
    assert "300.00\tUSD" in result.stdout

import csv
import json

import pytest
from lxml import etree

import main as cli

LEDGER = (
    "entry_id,entry_type,document_type,document_number,issue_date,period,counterparty_name,counterparty_nip,rate,net,vat\n"
    "S-1,sales,FA,FV/1/2024,2024-02-10,2024-02,Kontrahent S.A.,1234563218,23,1000.00,230.00\n"
    "P-1,purchase,FA,ZAK/7,2024-02-12,2024-02,Dostawca,5260250274,23,400.00,92.00\n"
    "S-2,sales,FA,FV/2/2024,2024-02-20,2024-02,Klient,1234563219,23,100.00,23.00\n"
)

COMPANY = {
    "nip": "5260250274",
    "full_name": "Przykladowa Spolka z o.o.",
    "address": {"street": "Prosta", "building_number": "1", "postal_code": "00-001", "city": "Warszawa"},
    "vat_status": "active",
    "legal_form": "spolka",
    "accounting_method": "full",
    "fiscal_year_start": "2024-01-01",
    "tax_office_code": "1471",
}


@pytest.fixture
def inputs(tmp_path):
    ledger = tmp_path / "ledger.csv"
    ledger.write_text(LEDGER, encoding="utf-8")
    company = tmp_path / "company.json"
    company.write_text(json.dumps(COMPANY), encoding="utf-8")
    return ledger, company


def _args(ledger, company, config_dir, output_root, *extra):
    return [
        "--input", str(ledger),
        "--company", str(company),
        "--config-dir", str(config_dir),
        "--output-root", str(output_root),
        "--operator", "Jan Kowalski",
        *extra,
    ]


def test_end_to_end_success(inputs, config_dir, tmp_path, capsys):
    ledger, company = inputs
    output_root = tmp_path / "out"

    exit_code = cli.main(_args(ledger, company, config_dir, output_root))
    assert exit_code == cli.EXIT_OK

    run_dir = output_root / "5260250274" / "2024-02_run001"
    assert sorted(p.name for p in run_dir.iterdir()) == [
        "findings.csv",
        "input_original.csv",
        "jpk_v7m.xml",
        "run_summary.txt",
    ]
    assert (run_dir / "input_original.csv").read_text(encoding="utf-8") == LEDGER

    root = etree.fromstring((run_dir / "jpk_v7m.xml").read_bytes())
    ns = {"j": root.nsmap[None]}
    assert root.find("j:SprzedazCtrl/j:LiczbaWierszySprzedazy", ns).text == "2"
    assert root.find("j:SprzedazCtrl/j:PodatekNalezny", ns).text == "253.00"
    assert root.find("j:Deklaracja/j:PozycjeSzczegolowe/j:P_60", ns).text == "161.00"

    with (run_dir / "findings.csv").open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert rows == [
        {
            "severity": "warning",
            "code": "INVALID_CUSTOMER_NIP",
            "field": "SprzedazWiersz[1].NrKontrahenta",
            "message": "Customer NIP is invalid in row 2: 1234563219",
        }
    ]

    summary = (run_dir / "run_summary.txt").read_text(encoding="utf-8")
    assert "nip: 5260250274" in summary
    assert "operator: Jan Kowalski" in summary
    assert "success: yes" in summary
    assert "row_count: 3" in summary

    out = capsys.readouterr().out
    assert f"OUTPUT DIR: {run_dir}" in out
    assert "WARNINGS: 1" in out


def test_runs_are_numbered(inputs, config_dir, tmp_path):
    ledger, company = inputs
    output_root = tmp_path / "out"
    assert cli.main(_args(ledger, company, config_dir, output_root)) == cli.EXIT_OK
    assert cli.main(_args(ledger, company, config_dir, output_root)) == cli.EXIT_OK
    assert (output_root / "5260250274" / "2024-02_run002").is_dir()


def test_generation_errors_exit_with_three(inputs, config_dir, tmp_path):
    ledger, company = inputs
    ledger.write_text(LEDGER.replace("FV/1/2024", ""), encoding="utf-8")
    output_root = tmp_path / "out"

    assert cli.main(_args(ledger, company, config_dir, output_root)) == cli.EXIT_GENERATION_ERRORS

    run_dir = output_root / "5260250274" / "2024-02_run001"
    assert not (run_dir / "jpk_v7m.xml").exists()
    findings = (run_dir / "findings.csv").read_text(encoding="utf-8")
    assert "error,MISSING_INVOICE_NUMBER,SprzedazWiersz[0].DowodSprzedazy" in findings
    assert "success: no" in (run_dir / "run_summary.txt").read_text(encoding="utf-8")


def test_ineligible_company_is_reported_as_finding(inputs, config_dir, tmp_path):
    ledger, company = inputs
    company.write_text(json.dumps({**COMPANY, "vat_status": "exempt"}), encoding="utf-8")
    output_root = tmp_path / "out"

    assert cli.main(_args(ledger, company, config_dir, output_root)) == cli.EXIT_GENERATION_ERRORS
    findings = (output_root / "5260250274" / "2024-02_run001" / "findings.csv").read_text(encoding="utf-8")
    assert "INELIGIBLE_COMPANY" in findings


def test_correction_purpose_is_written(inputs, config_dir, tmp_path):
    ledger, company = inputs
    output_root = tmp_path / "out"
    args = _args(ledger, company, config_dir, output_root, "--purpose", "correction", "--correction-number", "1")

    assert cli.main(args) == cli.EXIT_OK
    root = etree.fromstring((output_root / "5260250274" / "2024-02_run001" / "jpk_v7m.xml").read_bytes())
    ns = {"j": root.nsmap[None]}
    assert root.find("j:Naglowek/j:CelZlozenia", ns).text == "2"


def test_config_error_exits_with_two(inputs, config_dir, tmp_path, capsys):
    ledger, company = inputs
    (config_dir / "validation-rules.json").write_text("{", encoding="utf-8")

    assert cli.main(_args(ledger, company, config_dir, tmp_path / "out")) == cli.EXIT_CONFIG_ERROR
    assert "CONFIG ERROR" in capsys.readouterr().err


def test_runtime_error_exits_with_one(inputs, config_dir, tmp_path, capsys):
    _, company = inputs
    missing = tmp_path / "missing.csv"

    assert cli.main(_args(missing, company, config_dir, tmp_path / "out")) == cli.EXIT_RUNTIME_ERROR
    assert "RUNTIME ERROR" in capsys.readouterr().err

import json
from datetime import date
from decimal import Decimal

import pytest

from jpktool.config_loader import load_all_configs
from jpktool.ledger import load_company_profile, load_ledger, load_ledger_entries, read_ledger_csv
from jpktool.models import DocumentType, EntryType, GtuCode, ProcedureMarker, RateCode, VatStatus

HEADER = "entry_id,entry_type,document_type,document_number,issue_date,period,counterparty_name,counterparty_nip,rate,net,vat,intra_community,gtu,procedures\n"

LEDGER = HEADER + (
    "S-1,sales,FA,FV/1/2024,2024-02-10,2024-02,Kontrahent S.A.,1234563218,23,\"1 000,00\",230.00,,\"GTU_01, 6\",MPP\n"
    "P-1,purchase,FA,ZAK/7,12.02.2024,2024-02,Dostawca Sp. z o.o.,5260250274,23%,400.00,92.00,,,\n"
    "S-1,sales,FA,FV/1/2024,2024-02-10,2024-02,Kontrahent S.A.,1234563218,8,100.00,8.00,,,\n"
    "S-2,sales,RO,RO/2,10/02/2024,2024-02,Klient EU,DE123,0,500.00,0.00,yes,,SW\n"
)


def _write(tmp_path, text, name="ledger.csv"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


@pytest.fixture
def ledger_columns(config_dir):
    return load_all_configs(str(config_dir))["mappings"]["ledger_columns"]


def test_lines_are_grouped_by_entry_in_first_appearance_order(tmp_path, ledger_columns):
    result = load_ledger(_write(tmp_path, LEDGER), ledger_columns)
    assert result.period == "2024-02"
    assert result.line_count == 4
    assert [e.id for e in result.entries] == ["S-1", "P-1", "S-2"]

    sale = result.entries[0]
    assert sale.entry_type == EntryType.SALES
    assert [a.rate_code for a in sale.amounts] == [RateCode.STANDARD, RateCode.REDUCED_8]
    assert sale.amounts[0].net_amount == Decimal("1000.00")
    assert sale.amounts[0].gross_amount == Decimal("1230.00")
    assert sale.total_net == Decimal("1100.00")
    assert sale.total_vat == Decimal("238.00")
    assert sale.issue_date == date(2024, 2, 10)
    assert sale.gtu_codes == frozenset({GtuCode.GTU_01, GtuCode.GTU_06})
    assert sale.procedures == frozenset({ProcedureMarker.MPP})
    assert sale.counterparty_id == "1234563218"


def test_auto_date_formats_and_flags(tmp_path, ledger_columns):
    result = load_ledger(_write(tmp_path, LEDGER), ledger_columns)
    purchase, export = result.entries[1], result.entries[2]
    assert purchase.entry_type == EntryType.PURCHASE
    assert purchase.issue_date == date(2024, 2, 12)
    assert purchase.amounts[0].rate_code == RateCode.STANDARD
    assert purchase.gtu_codes == frozenset()

    assert export.document_type == DocumentType.RO
    assert export.issue_date == date(2024, 2, 10)
    assert export.amounts[0].is_intra_community
    assert not export.amounts[0].is_import
    assert export.counterparty_country == "PL"


def test_explicit_date_mode(tmp_path, ledger_columns):
    text = HEADER + "S-1,sales,FA,FV/1,10-02-2024,2024-02,K,1234563218,23,100,23,,,\n"
    df = read_ledger_csv(_write(tmp_path, text))
    result = load_ledger_entries(df, ledger_columns, date_mode="explicit", date_format="%d-%m-%Y")
    assert result.entries[0].issue_date == date(2024, 2, 10)

    with pytest.raises(ValueError, match="unable to parse issue date"):
        load_ledger_entries(df, ledger_columns)


def test_explicit_mode_requires_format(tmp_path, ledger_columns):
    df = read_ledger_csv(_write(tmp_path, LEDGER))
    with pytest.raises(ValueError, match="date_format"):
        load_ledger_entries(df, ledger_columns, date_mode="explicit")


def test_blank_issue_date_is_left_for_the_validator(tmp_path, ledger_columns):
    text = HEADER + "S-1,sales,FA,FV/1,,2024-02,K,1234563218,23,100,23,,,\n"
    result = load_ledger(_write(tmp_path, text), ledger_columns)
    assert result.entries[0].issue_date is None


def test_stated_totals_override_line_sums(tmp_path, ledger_columns):
    text = (
        "entry_id,entry_type,document_type,document_number,issue_date,period,counterparty_name,rate,net,vat,total_net,total_vat\n"
        "S-1,sales,FA,FV/1,2024-02-10,2024-02,K,23,100.00,23.00,100.00,24.00\n"
    )
    entry = load_ledger(_write(tmp_path, text), ledger_columns).entries[0]
    assert entry.total_vat == Decimal("24.00")
    assert entry.total_net == Decimal("100.00")
    assert entry.total_gross == Decimal("123.00")
    assert entry.counterparty_nip is None
    assert entry.counterparty_id == "K"


def test_more_than_one_period_is_rejected(tmp_path, ledger_columns):
    text = LEDGER + "S-9,sales,FA,FV/9,2024-03-01,2024-03,K,1234563218,23,1,0.23,,,\n"
    with pytest.raises(ValueError, match="exactly one period"):
        load_ledger(_write(tmp_path, text), ledger_columns)


def test_bad_values_report_the_csv_line(tmp_path, ledger_columns):
    bad_rate = HEADER + "S-1,sales,FA,FV/1,2024-02-10,2024-02,K,,7,100,7,,,\n"
    with pytest.raises(ValueError, match="CSV line 2: invalid VAT rate code '7'"):
        load_ledger(_write(tmp_path, bad_rate), ledger_columns)

    bad_type = HEADER + "S-1,refund,FA,FV/1,2024-02-10,2024-02,K,,23,100,23,,,\n"
    with pytest.raises(ValueError, match="invalid entry type 'refund'"):
        load_ledger(_write(tmp_path, bad_type), ledger_columns)

    bad_amount = HEADER + "S-1,sales,FA,FV/1,2024-02-10,2024-02,K,,23,abc,23,,,\n"
    with pytest.raises(ValueError, match="invalid net amount"):
        load_ledger(_write(tmp_path, bad_amount), ledger_columns)


def test_missing_required_column(tmp_path, ledger_columns):
    text = "entry_id,entry_type\nS-1,sales\n"
    with pytest.raises(ValueError, match="Required ledger column"):
        load_ledger(_write(tmp_path, text), ledger_columns)


def test_company_profile_from_json(tmp_path):
    payload = {
        "nip": "5260250274",
        "full_name": "Przykladowa Spolka z o.o.",
        "address": {"street": "Prosta", "building_number": "1", "postal_code": "00-001", "city": "Warszawa"},
        "vat_status": "active",
        "legal_form": "spolka",
        "accounting_method": "full",
        "fiscal_year_start": "2024-01-01",
        "vat_period": "monthly",
        "tax_office_code": "1471",
        "email": "",
    }
    path = _write(tmp_path, json.dumps(payload), "company.json")
    company = load_company_profile(path)
    assert company.vat_status == VatStatus.ACTIVE
    assert company.fiscal_year_start == date(2024, 1, 1)
    assert company.address.country == "PL"
    assert company.email is None


def test_company_profile_errors(tmp_path):
    with pytest.raises(ValueError, match="invalid JSON"):
        load_company_profile(_write(tmp_path, "{nope", "broken.json"))

    with pytest.raises(ValueError, match="missing required key"):
        load_company_profile(_write(tmp_path, json.dumps({"nip": "1"}), "partial.json"))


def test_non_finite_amount_is_rejected_with_line_context(tmp_path, ledger_columns):
    text = HEADER + "S-1,sales,FA,FV/1,2024-02-10,2024-02,K,,23,NaN,23,,,\n"
    with pytest.raises(ValueError, match="CSV line 2: invalid net amount 'NaN'"):
        load_ledger(_write(tmp_path, text), ledger_columns)

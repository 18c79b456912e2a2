from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import pandas as pd
import structlog

from jpktool.amounts import ZERO, q2, to_decimal
from jpktool.models import (
    AccountingMethod,
    Address,
    CompanyProfile,
    DocumentType,
    EntryType,
    GtuCode,
    LegalForm,
    ProcedureMarker,
    RateCode,
    VatAmount,
    VatPeriod,
    VatRegisterEntry,
    VatStatus,
)


logger = structlog.get_logger(__name__)

REQUIRED_LEDGER_KEYS = (
    "entry_id",
    "entry_type",
    "document_type",
    "document_number",
    "issue_date",
    "counterparty_name",
    "rate_code",
    "net_amount",
    "vat_amount",
    "period",
)
AUTO_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y")
TRUE_FLAGS = {"1", "true", "yes", "y", "t", "x"}

E = TypeVar("E", bound=Enum)


@dataclass(slots=True)
class LedgerLoadResult:
    entries: tuple[VatRegisterEntry, ...]
    period: str
    line_count: int
    warnings: list[str]


def read_ledger_csv(path: str) -> pd.DataFrame:
    """Read a ledger CSV while preserving exact column names."""
    return pd.read_csv(
        path,
        dtype=str,
        keep_default_na=False,
        na_filter=False,
    )


def load_ledger_entries(
    df: pd.DataFrame,
    ledger_columns: dict[str, Any],
    date_mode: str = "auto",
    date_format: str | None = None,
) -> LedgerLoadResult:
    """Group ledger lines into register entries, one line per VAT amount.

    Lines sharing an entry id form one entry, in order of first appearance.
    Entry-level fields are taken from the first line of each group.
    """
    if date_mode not in {"auto", "explicit"}:
        raise ValueError("date_mode must be either 'auto' or 'explicit'.")
    if date_mode == "explicit" and not date_format:
        raise ValueError("date_format must be provided when date_mode is 'explicit'.")

    missing_mappings = [key for key in REQUIRED_LEDGER_KEYS if not isinstance(ledger_columns.get(key), str)]
    if missing_mappings:
        raise ValueError("ledger_columns is missing required mapping(s): " + ", ".join(missing_mappings))

    missing_columns = [
        ledger_columns[key] for key in REQUIRED_LEDGER_KEYS if ledger_columns[key] not in df.columns
    ]
    if missing_columns:
        raise ValueError("Required ledger column(s) missing from CSV: " + ", ".join(missing_columns))

    if df.empty:
        raise ValueError("Input ledger contains no rows.")

    warnings: list[str] = []
    columns = _ColumnReader(ledger_columns, df.columns)

    periods = sorted({str(value).strip() for value in df[ledger_columns["period"]].tolist()})
    if len(periods) != 1:
        raise ValueError(f"Input ledger must contain exactly one period; found {len(periods)}: {periods}")
    period = periods[0]

    entries: list[VatRegisterEntry] = []
    for entry_id, group in df.groupby(ledger_columns["entry_id"], sort=False):
        entry_id = str(entry_id).strip()
        if not entry_id:
            raise ValueError(f"Blank entry id on CSV line(s): {_csv_lines(group)}")
        entries.append(_build_entry(entry_id, group, columns, period, date_mode, date_format, warnings))

    return LedgerLoadResult(
        entries=tuple(entries),
        period=period,
        line_count=len(df),
        warnings=warnings,
    )


def load_ledger(
    path: str,
    ledger_columns: dict[str, Any],
    date_mode: str = "auto",
    date_format: str | None = None,
) -> LedgerLoadResult:
    result = load_ledger_entries(read_ledger_csv(path), ledger_columns, date_mode, date_format)
    logger.info(
        "ledger.loaded",
        path=path,
        lines=result.line_count,
        entries=len(result.entries),
        period=result.period,
        warnings=len(result.warnings),
    )
    return result


def load_company_profile(path: str) -> CompanyProfile:
    profile_path = Path(path)
    try:
        payload = json.loads(profile_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc.msg})") from exc

    if not isinstance(payload, dict):
        raise ValueError(f"{path}: top-level JSON value must be an object")

    missing = [
        key
        for key in ("nip", "full_name", "address", "vat_status", "legal_form", "accounting_method", "fiscal_year_start")
        if key not in payload
    ]
    if missing:
        raise ValueError(f"{path}: company profile is missing required key(s): {', '.join(missing)}")

    address = payload["address"]
    if not isinstance(address, dict):
        raise ValueError(f"{path}: 'address' must be an object")

    try:
        return CompanyProfile(
            nip=str(payload["nip"]).strip(),
            full_name=str(payload["full_name"]).strip(),
            address=Address(
                street=str(address.get("street", "")),
                building_number=str(address.get("building_number", "")),
                postal_code=str(address.get("postal_code", "")),
                city=str(address.get("city", "")),
                country=str(address.get("country") or "PL"),
                apartment_number=_optional(address.get("apartment_number")),
            ),
            vat_status=VatStatus(payload["vat_status"]),
            legal_form=LegalForm(payload["legal_form"]),
            accounting_method=AccountingMethod(payload["accounting_method"]),
            fiscal_year_start=date.fromisoformat(str(payload["fiscal_year_start"])),
            vat_period=VatPeriod(payload["vat_period"]) if payload.get("vat_period") else None,
            regon=_optional(payload.get("regon")),
            email=_optional(payload.get("email")),
            tax_office_code=_optional(payload.get("tax_office_code")),
            short_name=_optional(payload.get("short_name")),
            vat_exemption_reason=_optional(payload.get("vat_exemption_reason")),
        )
    except ValueError as exc:
        raise ValueError(f"{path}: invalid company profile ({exc})") from exc


class _ColumnReader:
    """Reads semantic ledger keys from a row; unmapped optional keys read as blank."""

    def __init__(self, ledger_columns: dict[str, Any], available: pd.Index) -> None:
        self._columns = {
            key: column
            for key, column in ledger_columns.items()
            if isinstance(column, str) and column in available
        }

    def has(self, key: str) -> bool:
        return key in self._columns

    def text(self, row: pd.Series, key: str) -> str:
        column = self._columns.get(key)
        if column is None:
            return ""
        return str(row[column]).strip()


def _build_entry(
    entry_id: str,
    group: pd.DataFrame,
    columns: _ColumnReader,
    period: str,
    date_mode: str,
    date_format: str | None,
    warnings: list[str],
) -> VatRegisterEntry:
    first = group.iloc[0]
    context = f"entry '{entry_id}' (CSV line {_csv_lines(group)[0]})"

    amounts = tuple(_build_amount(row, columns, f"CSV line {index + 2}") for index, row in group.iterrows())

    breakdown_net = sum((amount.net_amount for amount in amounts), ZERO)
    breakdown_vat = sum((amount.vat_amount for amount in amounts), ZERO)
    breakdown_gross = sum((amount.gross_amount for amount in amounts), ZERO)

    counterparty_nip = _optional(columns.text(first, "counterparty_nip"))
    counterparty_name = columns.text(first, "counterparty_name")

    entry_type = _parse_enum(EntryType, columns.text(first, "entry_type").lower(), "entry type", context)
    document_type = _parse_enum(DocumentType, columns.text(first, "document_type").upper(), "document type", context)

    if len(group) > 1 and not _consistent(group, columns, "document_number"):
        warnings.append(f"{context}: document number differs between lines; first line wins")

    return VatRegisterEntry(
        id=entry_id,
        entry_type=entry_type,
        document_type=document_type,
        document_number=columns.text(first, "document_number"),
        issue_date=_parse_date(columns.text(first, "issue_date"), date_mode, date_format, "issue date", context),
        counterparty_id=columns.text(first, "counterparty_id") or counterparty_nip or counterparty_name,
        counterparty_name=counterparty_name,
        counterparty_country=columns.text(first, "counterparty_country").upper() or "PL",
        amounts=amounts,
        total_net=_stated_total(group, columns, "total_net", breakdown_net, context),
        total_vat=_stated_total(group, columns, "total_vat", breakdown_vat, context),
        total_gross=_stated_total(group, columns, "total_gross", breakdown_gross, context),
        period=period,
        sale_date=_parse_date(columns.text(first, "sale_date"), date_mode, date_format, "sale date", context),
        receipt_date=_parse_date(columns.text(first, "receipt_date"), date_mode, date_format, "receipt date", context),
        counterparty_nip=counterparty_nip,
        gtu_codes=frozenset(_parse_code_list(columns.text(first, "gtu_codes"), GtuCode, "GTU", context)),
        procedures=frozenset(
            _parse_code_list(columns.text(first, "procedures"), ProcedureMarker, "procedure marker", context)
        ),
        corrects_entry_id=_optional(columns.text(first, "corrects_entry_id")),
        correction_reason=_optional(columns.text(first, "correction_reason")),
    )


def _build_amount(row: pd.Series, columns: _ColumnReader, context: str) -> VatAmount:
    rate_text = columns.text(row, "rate_code")
    try:
        rate_code = RateCode.parse(rate_text)
    except ValueError as exc:
        raise ValueError(f"{context}: invalid VAT rate code {rate_text!r}") from exc

    net = _parse_amount(columns.text(row, "net_amount"), "net amount", context)
    vat = _parse_amount(columns.text(row, "vat_amount"), "VAT amount", context)
    gross_text = columns.text(row, "gross_amount")
    gross = _parse_amount(gross_text, "gross amount", context) if gross_text else net + vat

    return VatAmount(
        rate_code=rate_code,
        net_amount=net,
        vat_amount=vat,
        gross_amount=gross,
        is_reverse_charge=_parse_flag(columns.text(row, "is_reverse_charge")),
        is_import=_parse_flag(columns.text(row, "is_import")),
        is_intra_community=_parse_flag(columns.text(row, "is_intra_community")),
    )


def _stated_total(
    group: pd.DataFrame,
    columns: _ColumnReader,
    key: str,
    breakdown: Decimal,
    context: str,
) -> Decimal:
    if columns.has(key):
        for _, row in group.iterrows():
            text = columns.text(row, key)
            if text:
                return _parse_amount(text, key.replace("_", " "), context)
    return q2(breakdown)


def _consistent(group: pd.DataFrame, columns: _ColumnReader, key: str) -> bool:
    return len({columns.text(row, key) for _, row in group.iterrows()}) == 1


def _parse_amount(text: str, label: str, context: str) -> Decimal:
    try:
        return to_decimal(text)
    except ValueError as exc:
        raise ValueError(f"{context}: invalid {label} {text!r}") from exc


def _parse_flag(text: str) -> bool:
    return text.strip().lower() in TRUE_FLAGS


def _parse_enum(enum_type: type[E], text: str, label: str, context: str) -> E:
    try:
        return enum_type(text)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValueError(f"{context}: invalid {label} {text!r} (expected one of: {allowed})") from exc


def _parse_code_list(text: str, enum_type: type[E], label: str, context: str) -> list[E]:
    if not text:
        return []

    codes: list[E] = []
    for raw in text.split(","):
        code = raw.strip().upper()
        if not code:
            continue
        if enum_type is GtuCode and code.isdigit():
            code = f"GTU_{int(code):02d}"
        codes.append(_parse_enum(enum_type, code, label, context))
    return codes


def _parse_date(
    raw: str,
    date_mode: str,
    date_format: str | None,
    label: str,
    context: str,
) -> date | None:
    if not raw:
        return None

    formats = (date_format,) if date_mode == "explicit" else AUTO_DATE_FORMATS
    for fmt in formats:
        parsed = _try_format(raw, fmt)
        if parsed is not None:
            return parsed
    raise ValueError(f"{context}: unable to parse {label} {raw!r}")


def _try_format(raw: str, fmt: str | None) -> date | None:
    if not fmt:
        return None

    try:
        return datetime.strptime(raw, fmt).date()
    except ValueError:
        return None


def _csv_lines(group: pd.DataFrame) -> list[int]:
    # header is line 1
    return [int(index) + 2 for index in group.index]


def _optional(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None

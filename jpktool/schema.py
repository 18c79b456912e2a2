"""Mapped JPK_V7M(3) structure.

Every zone is an immutable value. ``None`` on an optional attribute means the
element is omitted from the document; an empty string is a present, empty
element. Amount mappings only ever hold the fields that were populated.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Mapping

from jpktool.models import DocumentType, GtuCode, ProcedureMarker


SALES_AMOUNT_FIELDS = tuple(f"K_{number}" for number in range(10, 40))
PURCHASE_AMOUNT_FIELDS = tuple(f"K_{number}" for number in range(40, 51))
DECLARATION_FIELDS = (*(f"P_{number}" for number in range(10, 70)), "P_ORDZU")

GTU_FIELDS = tuple(GtuCode)
SALES_MARKER_FIELDS = tuple(ProcedureMarker)
EMITTED_DOCUMENT_TYPES = frozenset({DocumentType.RO, DocumentType.WEW})

ACKNOWLEDGEMENT = "1"
MARKER_VALUE = "1"

OUTPUT_TAX_FIELD = "P_40"
INPUT_TAX_FIELD = "P_54"
PAYABLE_FIELD = "P_60"
REFUND_FIELD = "P_61"
EXPORT_ZERO_RATE_FIELD = "K_16"


@dataclass(frozen=True, slots=True)
class FormDefinition:
    namespace: str = "http://jpk.mf.gov.pl/wzor/2022/02/17/02171/"
    etd_namespace: str = "http://crd.gov.pl/xml/schematy/dziedzinowe/mf/2022/01/05/eDeklaracja/"
    form_code: str = "JPK_VAT"
    system_code: str = "JPK_V7M (3)"
    schema_version: str = "1-0"
    variant: str = "3"
    declaration_form_code: str = "VAT-7"
    declaration_system_code: str = "VAT-7 (21)"
    declaration_tax_code: str = "VAT"
    declaration_obligation_kind: str = "Z"
    declaration_schema_version: str = "1-0E"
    declaration_variant: str = "21"
    default_system_name: str = "JPKTool"
    default_tax_office_code: str = "0000"


DEFAULT_FORM = FormDefinition()


@dataclass(frozen=True, slots=True)
class FieldPair:
    """Net and optional VAT output field a single amount is placed into."""

    net: str
    vat: str | None = None


@dataclass(frozen=True, slots=True)
class FormCode:
    text: str
    attributes: tuple[tuple[str, str], ...]


@dataclass(frozen=True, slots=True)
class Header:
    form_code: FormCode
    variant: str
    purpose_code: str
    generated_at: datetime
    date_from: date | None
    date_to: date | None
    system_name: str | None = None
    tax_office_code: str | None = None
    correction_number: int | None = None


@dataclass(frozen=True, slots=True)
class Subject:
    nip: str | None
    full_name: str | None
    regon: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class RowAudit:
    """Stated entry totals next to the sums of the entry's amount breakdown."""

    entry_id: str
    stated_net: Decimal
    stated_vat: Decimal
    breakdown_net: Decimal
    breakdown_vat: Decimal
    # (stated gross, net + VAT) per amount, in breakdown order
    amount_grosses: tuple[tuple[Decimal, Decimal], ...] = ()


@dataclass(frozen=True, slots=True)
class SalesRow:
    line_number: int
    document_number: str | None
    issue_date: date | None
    amounts: Mapping[str, Decimal]
    counterparty_nip: str | None = None
    counterparty_name: str | None = None
    counterparty_address: str | None = None
    sale_date: date | None = None
    document_type: DocumentType | None = None
    gtu_codes: frozenset[GtuCode] = frozenset()
    markers: frozenset[ProcedureMarker] = frozenset()
    audit: RowAudit | None = None


@dataclass(frozen=True, slots=True)
class PurchaseRow:
    line_number: int
    document_number: str | None
    purchase_date: date | None
    amounts: Mapping[str, Decimal]
    supplier_nip: str | None = None
    supplier_name: str | None = None
    supplier_address: str | None = None
    receipt_date: date | None = None
    document_type: DocumentType | None = None
    is_import: bool = False
    audit: RowAudit | None = None


@dataclass(frozen=True, slots=True)
class RegisterControl:
    row_count: int
    tax_total: Decimal


@dataclass(frozen=True, slots=True)
class Registers:
    sales_rows: tuple[SalesRow, ...]
    sales_control: RegisterControl
    purchase_rows: tuple[PurchaseRow, ...]
    purchase_control: RegisterControl


@dataclass(frozen=True, slots=True)
class DeclarationHeader:
    form_code: FormCode
    variant: str
    purpose_code: str
    generated_at: datetime
    date_from: date | None
    date_to: date | None
    tax_office_code: str


@dataclass(frozen=True, slots=True)
class Declaration:
    header: DeclarationHeader
    fields: Mapping[str, Decimal]
    acknowledgement: str = ACKNOWLEDGEMENT
    # part of P_54 with no per-rate bucket; never serialized
    reverse_charge_input_vat: Decimal = Decimal("0")


@dataclass(frozen=True, slots=True)
class JpkDocument:
    namespace: str
    etd_namespace: str
    header: Header | None
    subject: Subject | None
    registers: Registers | None
    declaration: Declaration | None

    @property
    def sales_row_count(self) -> int:
        return len(self.registers.sales_rows) if self.registers else 0

    @property
    def purchase_row_count(self) -> int:
        return len(self.registers.purchase_rows) if self.registers else 0

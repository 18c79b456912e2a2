from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Mapping

from lxml import etree

from jpktool.amounts import format_amount
from jpktool.schema import (
    DECLARATION_FIELDS,
    GTU_FIELDS,
    MARKER_VALUE,
    PURCHASE_AMOUNT_FIELDS,
    SALES_AMOUNT_FIELDS,
    SALES_MARKER_FIELDS,
    Declaration,
    FormCode,
    Header,
    JpkDocument,
    PurchaseRow,
    RegisterControl,
    SalesRow,
    Subject,
)


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class _Builder:
    """Appends namespaced children; ``None`` values are never emitted."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace

    def element(self, parent: etree._Element, name: str) -> etree._Element:
        return etree.SubElement(parent, f"{{{self.namespace}}}{name}")

    def text(self, parent: etree._Element, name: str, value: object) -> None:
        if value is None:
            return
        child = self.element(parent, name)
        child.text = _to_text(value)

    def flag(self, parent: etree._Element, name: str, is_set: bool) -> None:
        if is_set:
            self.text(parent, name, MARKER_VALUE)

    def form_code(self, parent: etree._Element, name: str, form_code: FormCode) -> None:
        child = self.element(parent, name)
        for attribute, value in form_code.attributes:
            child.set(attribute, value)
        child.text = form_code.text

    def amounts(self, parent: etree._Element, amounts: Mapping[str, Decimal], catalogue: tuple[str, ...]) -> None:
        for name in catalogue:
            self.text(parent, name, amounts.get(name))


def serialize_jpk_v7m(document: JpkDocument) -> bytes:
    """Render a validated structure; identical input yields identical bytes."""
    builder = _Builder(document.namespace)
    root = etree.Element(
        f"{{{document.namespace}}}JPK",
        nsmap={None: document.namespace, "etd": document.etd_namespace},
    )

    if document.header is not None:
        _write_header(builder, root, document.header)
    if document.subject is not None:
        _write_subject(builder, root, document.subject)

    registers = document.registers
    if registers is not None:
        for row in registers.sales_rows:
            _write_sales_row(builder, builder.element(root, "SprzedazWiersz"), row)
        _write_control(builder, root, "SprzedazCtrl", "LiczbaWierszySprzedazy", "PodatekNalezny", registers.sales_control)

        for row in registers.purchase_rows:
            _write_purchase_row(builder, builder.element(root, "ZakupWiersz"), row)
        _write_control(builder, root, "ZakupCtrl", "LiczbaWierszyZakupow", "PodatekNaliczony", registers.purchase_control)

    if document.declaration is not None:
        _write_declaration(builder, root, document.declaration)

    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)


def _write_header(builder: _Builder, root: etree._Element, header: Header) -> None:
    element = builder.element(root, "Naglowek")
    builder.form_code(element, "KodFormularza", header.form_code)
    builder.text(element, "WariantFormularza", header.variant)
    builder.text(element, "CelZlozenia", header.purpose_code)
    builder.text(element, "DataWytworzeniaJPK", header.generated_at)
    builder.text(element, "DataOd", header.date_from)
    builder.text(element, "DataDo", header.date_to)
    builder.text(element, "NazwaSystemu", header.system_name)
    builder.text(element, "KodUrzedu", header.tax_office_code)


def _write_subject(builder: _Builder, root: etree._Element, subject: Subject) -> None:
    element = builder.element(root, "Podmiot1")
    builder.text(element, "NIP", subject.nip)
    builder.text(element, "PelnaNazwa", subject.full_name)
    builder.text(element, "REGON", subject.regon)
    builder.text(element, "Email", subject.email)


def _write_sales_row(builder: _Builder, element: etree._Element, row: SalesRow) -> None:
    builder.text(element, "LpSprzedazy", row.line_number)
    builder.text(element, "NrKontrahenta", row.counterparty_nip)
    builder.text(element, "NazwaKontrahenta", row.counterparty_name)
    builder.text(element, "AdresKontrahenta", row.counterparty_address)
    builder.text(element, "DowodSprzedazy", row.document_number)
    builder.text(element, "DataWystawienia", row.issue_date)
    builder.text(element, "DataSprzedazy", row.sale_date)
    builder.text(element, "TypDokumentu", row.document_type)

    for code in GTU_FIELDS:
        builder.flag(element, code.value, code in row.gtu_codes)
    for marker in SALES_MARKER_FIELDS:
        builder.flag(element, marker.value, marker in row.markers)

    builder.amounts(element, row.amounts, SALES_AMOUNT_FIELDS)


def _write_purchase_row(builder: _Builder, element: etree._Element, row: PurchaseRow) -> None:
    builder.text(element, "LpZakupu", row.line_number)
    builder.text(element, "NrDostawcy", row.supplier_nip)
    builder.text(element, "NazwaDostawcy", row.supplier_name)
    builder.text(element, "AdresDostawcy", row.supplier_address)
    builder.text(element, "DowodZakupu", row.document_number)
    builder.text(element, "DataZakupu", row.purchase_date)
    builder.text(element, "DataWplywu", row.receipt_date)
    builder.text(element, "TypDokumentu", row.document_type)
    builder.flag(element, "IMP", row.is_import)

    builder.amounts(element, row.amounts, PURCHASE_AMOUNT_FIELDS)


def _write_control(
    builder: _Builder,
    root: etree._Element,
    name: str,
    count_name: str,
    tax_name: str,
    control: RegisterControl,
) -> None:
    element = builder.element(root, name)
    builder.text(element, count_name, control.row_count)
    builder.text(element, tax_name, control.tax_total)


def _write_declaration(builder: _Builder, root: etree._Element, declaration: Declaration) -> None:
    element = builder.element(root, "Deklaracja")

    header = declaration.header
    header_element = builder.element(element, "Naglowek")
    builder.form_code(header_element, "KodFormularzaDekl", header.form_code)
    builder.text(header_element, "WariantFormularzaDekl", header.variant)
    builder.text(header_element, "CelZlozenia", header.purpose_code)
    builder.text(header_element, "DataWytworzeniaDeklaracji", header.generated_at)
    builder.text(header_element, "DataOd", header.date_from)
    builder.text(header_element, "DataDo", header.date_to)
    builder.text(header_element, "KodUrzedu", header.tax_office_code)

    details = builder.element(element, "PozycjeSzczegolowe")
    builder.amounts(details, declaration.fields, DECLARATION_FIELDS)

    builder.text(element, "Pouczenia", declaration.acknowledgement)


def _to_text(value: object) -> str:
    if isinstance(value, Decimal):
        return format_amount(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, date):
        return value.isoformat()
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)

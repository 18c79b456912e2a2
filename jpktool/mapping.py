from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping, assert_never

from jpktool.amounts import ZERO, q2, to_decimal
from jpktool.deklaracja import build_declaration
from jpktool.models import (
    Counterparty,
    DocumentKind,
    EntryType,
    FindingCode,
    GenerationRequest,
    RateCode,
    VatAmount,
    VatRegisterEntry,
    VatStatus,
)
from jpktool.schema import (
    DEFAULT_FORM,
    EMITTED_DOCUMENT_TYPES,
    FieldPair,
    PURCHASE_AMOUNT_FIELDS,
    SALES_AMOUNT_FIELDS,
    DeclarationHeader,
    FormCode,
    FormDefinition,
    Header,
    JpkDocument,
    PurchaseRow,
    RegisterControl,
    Registers,
    RowAudit,
    SalesRow,
    Subject,
)


SUPPORTED_KIND = DocumentKind.V7M
SUPPORTED_SCHEMA_VERSION = "3"
PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


class MappingContractError(ValueError):
    """Raised when a request cannot be mapped by this mapper at all."""

    def __init__(self, code: FindingCode, message: str) -> None:
        super().__init__(message)
        self.code = code


def sales_rate_fields(rate_code: RateCode, is_intra_community: bool) -> FieldPair:
    match rate_code:
        case RateCode.STANDARD:
            return FieldPair("K_10", "K_11")
        case RateCode.REDUCED_8:
            return FieldPair("K_12", "K_13")
        case RateCode.REDUCED_5:
            return FieldPair("K_14", "K_15")
        case RateCode.ZERO:
            return FieldPair("K_16") if is_intra_community else FieldPair("K_17")
        case RateCode.EXEMPT:
            return FieldPair("K_18")
        case RateCode.NOT_SUBJECT:
            return FieldPair("K_19")
        case RateCode.REVERSE_CHARGE:
            return FieldPair("K_20")
        case _:
            assert_never(rate_code)


def purchase_rate_fields(rate_code: RateCode) -> FieldPair | None:
    match rate_code:
        case RateCode.STANDARD:
            return FieldPair("K_40", "K_41")
        case RateCode.REDUCED_8:
            return FieldPair("K_42", "K_43")
        case RateCode.REDUCED_5:
            return FieldPair("K_44", "K_45")
        case RateCode.ZERO:
            return FieldPair("K_46")
        case RateCode.EXEMPT:
            return FieldPair("K_47")
        case RateCode.NOT_SUBJECT:
            return FieldPair("K_48")
        case RateCode.REVERSE_CHARGE:
            # no purchase bucket for reverse charge in this form variant
            return None
        case _:
            assert_never(rate_code)


def sales_flag_fields(amount: VatAmount) -> tuple[FieldPair, ...]:
    pairs: list[FieldPair] = []
    if amount.is_intra_community:
        pairs.append(FieldPair("K_27", "K_28"))
    if amount.is_import:
        pairs.append(FieldPair("K_29", "K_30"))
    if amount.is_reverse_charge:
        pairs.append(FieldPair("K_31", "K_32"))
    return tuple(pairs)


def purchase_flag_fields(amount: VatAmount) -> tuple[FieldPair, ...]:
    if amount.is_intra_community:
        return (FieldPair("K_49", "K_50"),)
    return ()


def map_to_jpk_v7m(
    request: GenerationRequest,
    form: FormDefinition = DEFAULT_FORM,
    generated_at: datetime | None = None,
) -> JpkDocument:
    """Map a request into the declaration structure.

    The timestamp comes from the request or from `generated_at`; the mapper
    never reads the clock, so equal inputs always give equal documents.
    """
    check_request(request)

    generated_at = _normalize_timestamp(request.generated_at or generated_at)
    date_from, date_to = period_bounds(request.period)
    purpose_code = request.purpose.code
    company = request.company

    sales_entries = [entry for entry in request.entries if entry.entry_type == EntryType.SALES]
    purchase_entries = [entry for entry in request.entries if entry.entry_type == EntryType.PURCHASE]

    header = Header(
        form_code=FormCode(
            text=form.form_code,
            attributes=(("kodSystemowy", form.system_code), ("wersjaSchemy", form.schema_version)),
        ),
        variant=form.variant,
        purpose_code=purpose_code,
        generated_at=generated_at,
        date_from=date_from,
        date_to=date_to,
        system_name=_optional_text(request.system_name) or form.default_system_name,
        tax_office_code=_optional_text(company.tax_office_code),
        correction_number=request.correction_number,
    )

    subject = Subject(
        nip=company.nip,
        full_name=company.full_name,
        regon=_optional_text(company.regon),
        email=_optional_text(company.email),
    )

    registers = Registers(
        sales_rows=tuple(
            map_sales_row(entry, line_number, request.counterparties)
            for line_number, entry in enumerate(sales_entries, start=1)
        ),
        sales_control=register_control(sales_entries),
        purchase_rows=tuple(
            map_purchase_row(entry, line_number, request.counterparties)
            for line_number, entry in enumerate(purchase_entries, start=1)
        ),
        purchase_control=register_control(purchase_entries),
    )

    declaration_header = DeclarationHeader(
        form_code=FormCode(
            text=form.declaration_form_code,
            attributes=(
                ("kodSystemowy", form.declaration_system_code),
                ("kodPodatku", form.declaration_tax_code),
                ("rodzajZobowiazania", form.declaration_obligation_kind),
                ("wersjaSchemy", form.declaration_schema_version),
            ),
        ),
        variant=form.declaration_variant,
        purpose_code=purpose_code,
        generated_at=generated_at,
        date_from=date_from,
        date_to=date_to,
        tax_office_code=_optional_text(company.tax_office_code) or form.default_tax_office_code,
    )

    return JpkDocument(
        namespace=form.namespace,
        etd_namespace=form.etd_namespace,
        header=header,
        subject=subject,
        registers=registers,
        declaration=build_declaration(sales_entries, purchase_entries, declaration_header),
    )


def check_request(request: GenerationRequest) -> None:
    if request.document_kind != SUPPORTED_KIND:
        raise MappingContractError(
            FindingCode.UNSUPPORTED_DOCUMENT_KIND,
            f"Invalid JPK type for V7M mapper: {_enum_text(request.document_kind)}",
        )

    if str(request.schema_version) != SUPPORTED_SCHEMA_VERSION:
        raise MappingContractError(
            FindingCode.UNSUPPORTED_SCHEMA_VERSION,
            f"Invalid schema version for V7M v3 mapper: {request.schema_version}",
        )

    if request.company.vat_status != VatStatus.ACTIVE:
        raise MappingContractError(
            FindingCode.INELIGIBLE_COMPANY,
            f"Cannot generate JPK_V7M for a company with VAT status '{_enum_text(request.company.vat_status)}'",
        )

    if not isinstance(request.period, str) or not PERIOD_PATTERN.match(request.period):
        raise MappingContractError(
            FindingCode.INVALID_PERIOD,
            f"Invalid period format: {request.period!r}. Expected YYYY-MM",
        )


def period_bounds(period: str) -> tuple[date, date]:
    match = PERIOD_PATTERN.match(period)
    if match is None:
        raise ValueError(f"Invalid period format: {period!r}. Expected YYYY-MM")

    year, month = int(match.group(1)), int(match.group(2))
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def map_sales_row(
    entry: VatRegisterEntry,
    line_number: int,
    counterparties: Mapping[str, Counterparty] | None = None,
) -> SalesRow:
    placed: dict[str, Decimal] = {}
    for amount in entry.amounts:
        rate_code = RateCode.parse(amount.rate_code)
        pairs = (sales_rate_fields(rate_code, amount.is_intra_community), *sales_flag_fields(amount))
        _place(placed, pairs, amount)

    return SalesRow(
        line_number=line_number,
        document_number=entry.document_number,
        issue_date=entry.issue_date,
        amounts=_ordered_amounts(placed, SALES_AMOUNT_FIELDS),
        counterparty_nip=_optional_text(entry.counterparty_nip),
        counterparty_name=_optional_text(entry.counterparty_name),
        counterparty_address=_counterparty_address(entry, counterparties),
        sale_date=entry.sale_date,
        document_type=entry.document_type if entry.document_type in EMITTED_DOCUMENT_TYPES else None,
        gtu_codes=frozenset(entry.gtu_codes),
        markers=frozenset(entry.procedures),
        audit=_row_audit(entry),
    )


def map_purchase_row(
    entry: VatRegisterEntry,
    line_number: int,
    counterparties: Mapping[str, Counterparty] | None = None,
) -> PurchaseRow:
    placed: dict[str, Decimal] = {}
    for amount in entry.amounts:
        base = purchase_rate_fields(RateCode.parse(amount.rate_code))
        pairs = (*((base,) if base is not None else ()), *purchase_flag_fields(amount))
        _place(placed, pairs, amount)

    return PurchaseRow(
        line_number=line_number,
        document_number=entry.document_number,
        purchase_date=entry.issue_date,
        amounts=_ordered_amounts(placed, PURCHASE_AMOUNT_FIELDS),
        supplier_nip=_optional_text(entry.counterparty_nip),
        supplier_name=_optional_text(entry.counterparty_name),
        supplier_address=_counterparty_address(entry, counterparties),
        receipt_date=entry.receipt_date,
        document_type=entry.document_type if entry.document_type in EMITTED_DOCUMENT_TYPES else None,
        is_import=any(amount.is_import for amount in entry.amounts),
        audit=_row_audit(entry),
    )


def register_control(entries: list[VatRegisterEntry]) -> RegisterControl:
    tax_total = sum((to_decimal(entry.total_vat) for entry in entries), ZERO)
    return RegisterControl(row_count=len(entries), tax_total=q2(tax_total))


def _place(placed: dict[str, Decimal], pairs: Iterable[FieldPair], amount: VatAmount) -> None:
    net = to_decimal(amount.net_amount)
    vat = to_decimal(amount.vat_amount)
    for pair in pairs:
        placed[pair.net] = placed.get(pair.net, ZERO) + net
        if pair.vat is not None:
            placed[pair.vat] = placed.get(pair.vat, ZERO) + vat


def _ordered_amounts(placed: dict[str, Decimal], catalogue: tuple[str, ...]) -> Mapping[str, Decimal]:
    return MappingProxyType({name: q2(placed[name]) for name in catalogue if name in placed})


def _row_audit(entry: VatRegisterEntry) -> RowAudit:
    return RowAudit(
        entry_id=entry.id,
        stated_net=to_decimal(entry.total_net),
        stated_vat=to_decimal(entry.total_vat),
        breakdown_net=sum((to_decimal(a.net_amount) for a in entry.amounts), ZERO),
        breakdown_vat=sum((to_decimal(a.vat_amount) for a in entry.amounts), ZERO),
        amount_grosses=tuple(
            (to_decimal(a.gross_amount), to_decimal(a.net_amount) + to_decimal(a.vat_amount))
            for a in entry.amounts
        ),
    )


def _counterparty_address(
    entry: VatRegisterEntry,
    counterparties: Mapping[str, Counterparty] | None,
) -> str | None:
    if not counterparties:
        return None
    counterparty = counterparties.get(entry.counterparty_id)
    if counterparty is None or counterparty.address is None:
        return None
    return _optional_text(counterparty.address.one_line())


def _normalize_timestamp(value: datetime | None) -> datetime:
    if value is None:
        raise ValueError("A generation timestamp is required: pin it on the request or pass generated_at")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _enum_text(value: object) -> str:
    return str(getattr(value, "value", value))

from __future__ import annotations

from decimal import Decimal
from types import MappingProxyType
from typing import Callable, Iterable, assert_never

from jpktool.amounts import ZERO, q2, to_decimal
from jpktool.models import RateCode, VatAmount, VatRegisterEntry
from jpktool.schema import (
    DECLARATION_FIELDS,
    INPUT_TAX_FIELD,
    OUTPUT_TAX_FIELD,
    PAYABLE_FIELD,
    REFUND_FIELD,
    Declaration,
    DeclarationHeader,
    FieldPair,
)


def sales_declaration_fields(rate_code: RateCode, is_intra_community: bool) -> FieldPair:
    match rate_code:
        case RateCode.STANDARD:
            return FieldPair("P_10", "P_11")
        case RateCode.REDUCED_8:
            return FieldPair("P_12", "P_13")
        case RateCode.REDUCED_5:
            return FieldPair("P_14", "P_15")
        case RateCode.ZERO:
            return FieldPair("P_16") if is_intra_community else FieldPair("P_17")
        case RateCode.EXEMPT:
            return FieldPair("P_18")
        case RateCode.NOT_SUBJECT:
            return FieldPair("P_19")
        case RateCode.REVERSE_CHARGE:
            return FieldPair("P_20")
        case _:
            assert_never(rate_code)


def purchase_declaration_fields(rate_code: RateCode, is_intra_community: bool) -> FieldPair | None:
    match rate_code:
        case RateCode.STANDARD:
            return FieldPair("P_41", "P_42")
        case RateCode.REDUCED_8:
            return FieldPair("P_43", "P_44")
        case RateCode.REDUCED_5:
            return FieldPair("P_45", "P_46")
        case RateCode.ZERO:
            return FieldPair("P_47")
        case RateCode.EXEMPT:
            return FieldPair("P_48")
        case RateCode.NOT_SUBJECT:
            return FieldPair("P_49")
        case RateCode.REVERSE_CHARGE:
            return None
        case _:
            assert_never(rate_code)


def sales_declaration_flag_fields(amount: VatAmount) -> tuple[FieldPair, ...]:
    pairs: list[FieldPair] = []
    if amount.is_intra_community:
        pairs.append(FieldPair("P_27", "P_28"))
    if amount.is_import:
        pairs.append(FieldPair("P_29", "P_30"))
    if amount.is_reverse_charge:
        pairs.append(FieldPair("P_31", "P_32"))
    return tuple(pairs)


def purchase_declaration_flag_fields(amount: VatAmount) -> tuple[FieldPair, ...]:
    pairs: list[FieldPair] = []
    if amount.is_intra_community:
        pairs.append(FieldPair("P_50", "P_51"))
    if amount.is_import:
        pairs.append(FieldPair("P_52", "P_53"))
    return tuple(pairs)


def build_declaration(
    sales_entries: list[VatRegisterEntry],
    purchase_entries: list[VatRegisterEntry],
    header: DeclarationHeader,
) -> Declaration:
    fields: dict[str, Decimal] = {}

    fields.update(aggregate_by_rate(sales_entries, sales_declaration_fields, sales_declaration_flag_fields))
    output_tax = total_tax(sales_entries)
    fields[OUTPUT_TAX_FIELD] = output_tax

    fields.update(aggregate_by_rate(purchase_entries, purchase_declaration_fields, purchase_declaration_flag_fields))
    input_tax = total_tax(purchase_entries)
    fields[INPUT_TAX_FIELD] = input_tax

    payable, refund = settle(output_tax, input_tax)
    if payable is not None:
        fields[PAYABLE_FIELD] = payable
    if refund is not None:
        fields[REFUND_FIELD] = refund

    ordered = {name: fields[name] for name in DECLARATION_FIELDS if name in fields}
    return Declaration(
        header=header,
        fields=MappingProxyType(ordered),
        reverse_charge_input_vat=reverse_charge_tax(purchase_entries),
    )


def aggregate_by_rate(
    entries: Iterable[VatRegisterEntry],
    rate_fields: Callable[[RateCode, bool], FieldPair | None],
    flag_fields: Callable[[VatAmount], tuple[FieldPair, ...]],
) -> dict[str, Decimal]:
    """Sum raw net/VAT per output bucket and round once per bucket."""
    totals: dict[str, Decimal] = {}

    for entry in entries:
        for amount in entry.amounts:
            base = rate_fields(RateCode.parse(amount.rate_code), amount.is_intra_community)
            pairs = (*((base,) if base is not None else ()), *flag_fields(amount))
            net = to_decimal(amount.net_amount)
            vat = to_decimal(amount.vat_amount)
            for pair in pairs:
                totals[pair.net] = totals.get(pair.net, ZERO) + net
                if pair.vat is not None:
                    totals[pair.vat] = totals.get(pair.vat, ZERO) + vat

    return {name: q2(value) for name, value in totals.items()}


def total_tax(entries: Iterable[VatRegisterEntry]) -> Decimal:
    return q2(sum((to_decimal(entry.total_vat) for entry in entries), ZERO))


def reverse_charge_tax(entries: Iterable[VatRegisterEntry]) -> Decimal:
    """VAT on reverse-charge amounts, which only reach the flag buckets and the total."""
    vat = (
        to_decimal(amount.vat_amount)
        for entry in entries
        for amount in entry.amounts
        if RateCode.parse(amount.rate_code) == RateCode.REVERSE_CHARGE
    )
    return q2(sum(vat, ZERO))


def settle(output_tax: Decimal, input_tax: Decimal) -> tuple[Decimal | None, Decimal | None]:
    """Return (payable, refund); a zero difference populates neither."""
    difference = q2(output_tax) - q2(input_tax)
    if difference > ZERO:
        return difference, None
    if difference < ZERO:
        return None, -difference
    return None, None

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from jpktool.amounts import ZERO, q2, within_tolerance
from jpktool.models import (
    Finding,
    FindingCode,
    ProcedureMarker,
    SubmissionPurpose,
    ValidationResult,
    error,
    warning,
)
from jpktool.nip import is_valid_nip
from jpktool.schema import (
    ACKNOWLEDGEMENT,
    EXPORT_ZERO_RATE_FIELD,
    INPUT_TAX_FIELD,
    OUTPUT_TAX_FIELD,
    PAYABLE_FIELD,
    PURCHASE_AMOUNT_FIELDS,
    REFUND_FIELD,
    SALES_AMOUNT_FIELDS,
    Declaration,
    Header,
    JpkDocument,
    PurchaseRow,
    Registers,
    RowAudit,
    SalesRow,
)


SALES_RATE_VAT_FIELDS = ("P_11", "P_13", "P_15")
PURCHASE_RATE_VAT_FIELDS = ("P_42", "P_44", "P_46")
EXPORT_MARKERS = frozenset({ProcedureMarker.SW, ProcedureMarker.EE})
EXCLUSIVE_MARKERS = ((ProcedureMarker.SW, ProcedureMarker.EE),)
FOREIGN_SALES_FIELDS = ("K_16", "K_27", "K_28")
FOREIGN_PURCHASE_FIELDS = ("K_49", "K_50")
DECLARATION_PATH = "Deklaracja.PozycjeSzczegolowe"


@dataclass(frozen=True, slots=True)
class ValidationRules:
    amount_tolerance: Decimal = Decimal("0.01")
    max_gtu_codes: int = 3


DEFAULT_RULES = ValidationRules()


def validate_jpk_v7m(document: JpkDocument, rules: ValidationRules = DEFAULT_RULES) -> ValidationResult:
    errors: list[Finding] = []
    warnings: list[Finding] = []

    # both passes always run so one round trip reports everything
    errors.extend(validate_structure(document))
    business_errors, business_warnings = validate_business_rules(document, rules)
    errors.extend(business_errors)
    warnings.extend(business_warnings)

    return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))


def validate_structure(document: JpkDocument) -> list[Finding]:
    errors: list[Finding] = []

    header = document.header
    if header is None:
        errors.append(error(FindingCode.MISSING_HEADER, "JPK header (Naglowek) is missing", "Naglowek"))

    subject = document.subject
    nip = subject.nip if subject is not None else None
    if not nip:
        errors.append(error(FindingCode.MISSING_NIP, "Filer NIP is missing", "Podmiot1.NIP"))
    elif not is_valid_nip(nip):
        errors.append(error(FindingCode.INVALID_NIP, f"Filer NIP is invalid: {nip}", "Podmiot1.NIP"))

    if subject is None or not subject.full_name:
        errors.append(
            error(FindingCode.MISSING_COMPANY_NAME, "Filer full name is missing", "Podmiot1.PelnaNazwa")
        )

    if header is not None and (header.date_from is None or header.date_to is None):
        errors.append(
            error(FindingCode.MISSING_DATES, "Reporting period dates are missing", "Naglowek.DataOd")
        )

    if header is not None:
        errors.extend(_check_correction_number(header))

    declaration = document.declaration
    if declaration is None:
        errors.append(error(FindingCode.MISSING_DECLARATION, "VAT-7 declaration is missing", "Deklaracja"))
    elif declaration.acknowledgement != ACKNOWLEDGEMENT:
        errors.append(
            error(
                FindingCode.INVALID_ACKNOWLEDGEMENT,
                f"Pouczenia must be '{ACKNOWLEDGEMENT}', got {declaration.acknowledgement!r}",
                "Deklaracja.Pouczenia",
            )
        )

    return errors


def _check_correction_number(header: Header) -> list[Finding]:
    number = header.correction_number
    if header.purpose_code == SubmissionPurpose.CORRECTION.code:
        if number is None or number < 1:
            return [
                error(
                    FindingCode.INVALID_CORRECTION_NUMBER,
                    f"A correction needs a correction number of 1 or more, got {number!r}",
                    "Naglowek.CelZlozenia",
                )
            ]
    elif number is not None:
        return [
            error(
                FindingCode.INVALID_CORRECTION_NUMBER,
                f"Correction number {number} given for an original filing",
                "Naglowek.CelZlozenia",
            )
        ]
    return []


def validate_business_rules(
    document: JpkDocument,
    rules: ValidationRules = DEFAULT_RULES,
) -> tuple[list[Finding], list[Finding]]:
    errors: list[Finding] = []
    warnings: list[Finding] = []

    registers = document.registers
    if registers is None:
        return errors, warnings

    for index, row in enumerate(registers.sales_rows):
        _check_sales_row(row, index, rules, errors, warnings)

    for index, row in enumerate(registers.purchase_rows):
        _check_purchase_row(row, index, rules, errors, warnings)

    errors.extend(_check_control_counts(registers))

    if document.declaration is not None:
        _check_declaration(registers, document.declaration, rules, errors, warnings)

    return errors, warnings


def _check_sales_row(
    row: SalesRow,
    index: int,
    rules: ValidationRules,
    errors: list[Finding],
    warnings: list[Finding],
) -> None:
    path = f"SprzedazWiersz[{index}]"
    line_number = row.line_number

    if not row.document_number:
        errors.append(
            error(
                FindingCode.MISSING_INVOICE_NUMBER,
                f"Sales document number is missing in row {line_number}",
                f"{path}.DowodSprzedazy",
            )
        )

    if row.issue_date is None:
        errors.append(
            error(
                FindingCode.MISSING_ISSUE_DATE,
                f"Issue date is missing in row {line_number}",
                f"{path}.DataWystawienia",
            )
        )

    if not any(name in row.amounts for name in SALES_AMOUNT_FIELDS):
        errors.append(
            error(FindingCode.MISSING_AMOUNTS, f"Sales row {line_number} has no amounts", path)
        )

    # foreign ids on export/intra-EU rows do not follow the domestic checksum
    is_foreign = bool(row.markers & EXPORT_MARKERS) or any(name in row.amounts for name in FOREIGN_SALES_FIELDS)
    if row.counterparty_nip and not is_valid_nip(row.counterparty_nip) and not is_foreign:
        warnings.append(
            warning(
                FindingCode.INVALID_CUSTOMER_NIP,
                f"Customer NIP is invalid in row {line_number}: {row.counterparty_nip}",
                f"{path}.NrKontrahenta",
            )
        )

    if len(row.gtu_codes) > rules.max_gtu_codes:
        codes = ", ".join(sorted(code.value for code in row.gtu_codes))
        warnings.append(
            warning(
                FindingCode.MULTIPLE_GTU_CODES,
                f"Many GTU codes in row {line_number}: {codes}",
                path,
            )
        )

    for first, second in EXCLUSIVE_MARKERS:
        if first in row.markers and second in row.markers:
            warnings.append(
                warning(
                    FindingCode.CONFLICTING_MARKERS,
                    f"Markers {first.value} and {second.value} are both set in row {line_number}",
                    path,
                )
            )

    if row.markers & EXPORT_MARKERS and EXPORT_ZERO_RATE_FIELD not in row.amounts:
        warnings.append(
            warning(
                FindingCode.MISSING_EXPORT_AMOUNT,
                f"Export/intra-EU row {line_number} has no {EXPORT_ZERO_RATE_FIELD} amount",
                f"{path}.{EXPORT_ZERO_RATE_FIELD}",
            )
        )

    warnings.extend(_check_audit(row.audit, f"Sales row {line_number}", path, rules))


def _check_purchase_row(
    row: PurchaseRow,
    index: int,
    rules: ValidationRules,
    errors: list[Finding],
    warnings: list[Finding],
) -> None:
    path = f"ZakupWiersz[{index}]"
    line_number = row.line_number

    if not row.document_number:
        errors.append(
            error(
                FindingCode.MISSING_PURCHASE_NUMBER,
                f"Purchase document number is missing in row {line_number}",
                f"{path}.DowodZakupu",
            )
        )

    if row.purchase_date is None:
        errors.append(
            error(
                FindingCode.MISSING_PURCHASE_DATE,
                f"Purchase date is missing in row {line_number}",
                f"{path}.DataZakupu",
            )
        )

    if not any(name in row.amounts for name in PURCHASE_AMOUNT_FIELDS):
        errors.append(
            error(FindingCode.MISSING_AMOUNTS, f"Purchase row {line_number} has no amounts", path)
        )

    is_foreign = row.is_import or any(name in row.amounts for name in FOREIGN_PURCHASE_FIELDS)
    if row.supplier_nip and not is_valid_nip(row.supplier_nip) and not is_foreign:
        warnings.append(
            warning(
                FindingCode.INVALID_SUPPLIER_NIP,
                f"Supplier NIP is invalid in row {line_number}: {row.supplier_nip}",
                f"{path}.NrDostawcy",
            )
        )

    warnings.extend(_check_audit(row.audit, f"Purchase row {line_number}", path, rules))


def _check_audit(audit: RowAudit | None, label: str, path: str, rules: ValidationRules) -> list[Finding]:
    if audit is None:
        return []

    findings: list[Finding] = []
    stated = audit.stated_net + audit.stated_vat
    breakdown = audit.breakdown_net + audit.breakdown_vat
    if not within_tolerance(stated, breakdown, rules.amount_tolerance):
        findings.append(
            warning(
                FindingCode.ENTRY_TOTAL_MISMATCH,
                f"{label} (entry {audit.entry_id}): amounts sum to {q2(breakdown)} "
                f"but entry totals are {q2(stated)}",
                path,
            )
        )

    for position, (gross, expected_gross) in enumerate(audit.amount_grosses, start=1):
        if not within_tolerance(gross, expected_gross, rules.amount_tolerance):
            findings.append(
                warning(
                    FindingCode.GROSS_AMOUNT_MISMATCH,
                    f"{label} (entry {audit.entry_id}), amount {position}: gross {q2(gross)} "
                    f"differs from net + VAT {q2(expected_gross)}",
                    path,
                )
            )

    return findings


def _check_control_counts(registers: Registers) -> list[Finding]:
    errors: list[Finding] = []

    sales_count = len(registers.sales_rows)
    sales_ctrl_count = registers.sales_control.row_count
    if sales_count != sales_ctrl_count:
        errors.append(
            error(
                FindingCode.SALES_COUNT_MISMATCH,
                f"Sales row count mismatch: {sales_count} rows vs control {sales_ctrl_count}",
                "SprzedazCtrl.LiczbaWierszySprzedazy",
            )
        )

    purchase_count = len(registers.purchase_rows)
    purchase_ctrl_count = registers.purchase_control.row_count
    if purchase_count != purchase_ctrl_count:
        errors.append(
            error(
                FindingCode.PURCHASE_COUNT_MISMATCH,
                f"Purchase row count mismatch: {purchase_count} rows vs control {purchase_ctrl_count}",
                "ZakupCtrl.LiczbaWierszyZakupow",
            )
        )

    return errors


def _check_declaration(
    registers: Registers,
    declaration: Declaration,
    rules: ValidationRules,
    errors: list[Finding],
    warnings: list[Finding],
) -> None:
    fields = declaration.fields
    tolerance = rules.amount_tolerance

    ctrl_output_tax = registers.sales_control.tax_total
    ctrl_input_tax = registers.purchase_control.tax_total
    decl_output_tax = fields.get(OUTPUT_TAX_FIELD, ZERO)
    decl_input_tax = fields.get(INPUT_TAX_FIELD, ZERO)

    if not within_tolerance(ctrl_output_tax, decl_output_tax, tolerance):
        warnings.append(
            warning(
                FindingCode.OUTPUT_VAT_MISMATCH,
                f"Output VAT mismatch: register {q2(ctrl_output_tax)} vs declaration {q2(decl_output_tax)}",
                f"{DECLARATION_PATH}.{OUTPUT_TAX_FIELD}",
            )
        )

    if not within_tolerance(ctrl_input_tax, decl_input_tax, tolerance):
        warnings.append(
            warning(
                FindingCode.INPUT_VAT_MISMATCH,
                f"Input VAT mismatch: register {q2(ctrl_input_tax)} vs declaration {q2(decl_input_tax)}",
                f"{DECLARATION_PATH}.{INPUT_TAX_FIELD}",
            )
        )

    by_rate_output = sum((fields.get(name, ZERO) for name in SALES_RATE_VAT_FIELDS), ZERO)
    if not within_tolerance(by_rate_output, decl_output_tax, tolerance):
        warnings.append(
            warning(
                FindingCode.OUTPUT_VAT_BREAKDOWN_MISMATCH,
                f"Output VAT by rate sums to {q2(by_rate_output)} but total is {q2(decl_output_tax)}",
                f"{DECLARATION_PATH}.{OUTPUT_TAX_FIELD}",
            )
        )

    by_rate_input = sum((fields.get(name, ZERO) for name in PURCHASE_RATE_VAT_FIELDS), ZERO)
    by_rate_input += declaration.reverse_charge_input_vat
    if not within_tolerance(by_rate_input, decl_input_tax, tolerance):
        warnings.append(
            warning(
                FindingCode.INPUT_VAT_BREAKDOWN_MISMATCH,
                f"Input VAT by rate sums to {q2(by_rate_input)} but total is {q2(decl_input_tax)}",
                f"{DECLARATION_PATH}.{INPUT_TAX_FIELD}",
            )
        )

    # the filed liability itself is wrong, so this one blocks the document
    difference = q2(ctrl_output_tax) - q2(ctrl_input_tax)
    expected_payable = max(difference, ZERO)
    expected_refund = max(-difference, ZERO)
    declared_payable = fields.get(PAYABLE_FIELD, ZERO)
    declared_refund = fields.get(REFUND_FIELD, ZERO)

    if not within_tolerance(expected_payable, declared_payable, tolerance):
        errors.append(
            error(
                FindingCode.SETTLEMENT_MISMATCH,
                f"VAT payable mismatch: expected {q2(expected_payable)} vs declared {q2(declared_payable)}",
                f"{DECLARATION_PATH}.{PAYABLE_FIELD}",
            )
        )

    if not within_tolerance(expected_refund, declared_refund, tolerance):
        errors.append(
            error(
                FindingCode.SETTLEMENT_MISMATCH,
                f"VAT refund mismatch: expected {q2(expected_refund)} vs declared {q2(declared_refund)}",
                f"{DECLARATION_PATH}.{REFUND_FIELD}",
            )
        )

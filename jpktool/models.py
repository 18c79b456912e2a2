from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class VatStatus(str, Enum):
    ACTIVE = "active"
    EXEMPT = "exempt"
    SMALL_TAXPAYER = "small_taxpayer"


class LegalForm(str, Enum):
    JDG = "jdg"
    SPOLKA = "spolka"
    OTHER = "other"


class AccountingMethod(str, Enum):
    FULL = "full"
    PKPIR = "pkpir"
    TAX_CARD = "tax_card"


class VatPeriod(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class EntryType(str, Enum):
    SALES = "sales"
    PURCHASE = "purchase"


class DocumentType(str, Enum):
    FA = "FA"
    KOREKTA = "KOREKTA"
    ZAL = "ZAL"
    RO = "RO"
    WEW = "WEW"
    IMPORT = "IMPORT"
    WNT = "WNT"


class RateCode(str, Enum):
    STANDARD = "23"
    REDUCED_8 = "8"
    REDUCED_5 = "5"
    ZERO = "0"
    EXEMPT = "zw"
    NOT_SUBJECT = "np"
    REVERSE_CHARGE = "oo"

    @classmethod
    def parse(cls, value: str | RateCode) -> RateCode:
        if isinstance(value, cls):
            return value

        text = str(value).strip().lower()
        if text.endswith("%"):
            text = text[:-1].strip()

        for member in cls:
            if member.value == text:
                return member
        raise ValueError(f"Unknown VAT rate code: {value!r}")


class GtuCode(str, Enum):
    GTU_01 = "GTU_01"
    GTU_02 = "GTU_02"
    GTU_03 = "GTU_03"
    GTU_04 = "GTU_04"
    GTU_05 = "GTU_05"
    GTU_06 = "GTU_06"
    GTU_07 = "GTU_07"
    GTU_08 = "GTU_08"
    GTU_09 = "GTU_09"
    GTU_10 = "GTU_10"
    GTU_11 = "GTU_11"
    GTU_12 = "GTU_12"
    GTU_13 = "GTU_13"


class ProcedureMarker(str, Enum):
    SW = "SW"                      # intra-community distance sale of goods
    EE = "EE"                      # export / telecom services
    TP = "TP"                      # related parties
    TT_WNT = "TT_WNT"              # triangular intra-community acquisition
    TT_D = "TT_D"                  # triangular supply
    MR_T = "MR_T"                  # margin scheme, tourist services
    MR_UZ = "MR_UZ"                # margin scheme, used goods
    I_42 = "I_42"
    I_63 = "I_63"
    B_SPV = "B_SPV"
    B_SPV_DOSTAWA = "B_SPV_DOSTAWA"
    B_MPV_PROWIZJA = "B_MPV_PROWIZJA"
    MPP = "MPP"                    # split payment


class DocumentKind(str, Enum):
    V7M = "V7M"
    V7K = "V7K"
    FA = "FA"
    KR = "KR"
    PKPIR = "PKPIR"
    MAG = "MAG"


class SubmissionPurpose(str, Enum):
    ORIGINAL = "original"
    CORRECTION = "correction"

    @property
    def code(self) -> str:
        return "1" if self is SubmissionPurpose.ORIGINAL else "2"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class FindingCode(str, Enum):
    # input contract
    UNSUPPORTED_DOCUMENT_KIND = "UNSUPPORTED_DOCUMENT_KIND"
    UNSUPPORTED_SCHEMA_VERSION = "UNSUPPORTED_SCHEMA_VERSION"
    INELIGIBLE_COMPANY = "INELIGIBLE_COMPANY"
    INVALID_PERIOD = "INVALID_PERIOD"
    GENERATION_FAILED = "GENERATION_FAILED"
    # structure
    MISSING_HEADER = "MISSING_HEADER"
    MISSING_NIP = "MISSING_NIP"
    INVALID_NIP = "INVALID_NIP"
    MISSING_COMPANY_NAME = "MISSING_COMPANY_NAME"
    MISSING_DATES = "MISSING_DATES"
    MISSING_DECLARATION = "MISSING_DECLARATION"
    INVALID_ACKNOWLEDGEMENT = "INVALID_ACKNOWLEDGEMENT"
    INVALID_CORRECTION_NUMBER = "INVALID_CORRECTION_NUMBER"
    # rows
    MISSING_INVOICE_NUMBER = "MISSING_INVOICE_NUMBER"
    MISSING_ISSUE_DATE = "MISSING_ISSUE_DATE"
    MISSING_PURCHASE_NUMBER = "MISSING_PURCHASE_NUMBER"
    MISSING_PURCHASE_DATE = "MISSING_PURCHASE_DATE"
    MISSING_AMOUNTS = "MISSING_AMOUNTS"
    INVALID_CUSTOMER_NIP = "INVALID_CUSTOMER_NIP"
    INVALID_SUPPLIER_NIP = "INVALID_SUPPLIER_NIP"
    MULTIPLE_GTU_CODES = "MULTIPLE_GTU_CODES"
    CONFLICTING_MARKERS = "CONFLICTING_MARKERS"
    MISSING_EXPORT_AMOUNT = "MISSING_EXPORT_AMOUNT"
    ENTRY_TOTAL_MISMATCH = "ENTRY_TOTAL_MISMATCH"
    GROSS_AMOUNT_MISMATCH = "GROSS_AMOUNT_MISMATCH"
    # cross-document
    SALES_COUNT_MISMATCH = "SALES_COUNT_MISMATCH"
    PURCHASE_COUNT_MISMATCH = "PURCHASE_COUNT_MISMATCH"
    OUTPUT_VAT_MISMATCH = "OUTPUT_VAT_MISMATCH"
    INPUT_VAT_MISMATCH = "INPUT_VAT_MISMATCH"
    OUTPUT_VAT_BREAKDOWN_MISMATCH = "OUTPUT_VAT_BREAKDOWN_MISMATCH"
    INPUT_VAT_BREAKDOWN_MISMATCH = "INPUT_VAT_BREAKDOWN_MISMATCH"
    SETTLEMENT_MISMATCH = "SETTLEMENT_MISMATCH"


@dataclass(frozen=True, slots=True)
class Address:
    street: str
    building_number: str
    postal_code: str
    city: str
    country: str = "PL"
    apartment_number: str | None = None

    def one_line(self) -> str:
        number = self.building_number
        if self.apartment_number:
            number = f"{number}/{self.apartment_number}"
        street = " ".join(part for part in (self.street, number) if part)
        town = " ".join(part for part in (self.postal_code, self.city) if part)
        return ", ".join(part for part in (street, town, self.country) if part)


@dataclass(frozen=True, slots=True)
class CompanyProfile:
    nip: str
    full_name: str
    address: Address
    vat_status: VatStatus
    legal_form: LegalForm
    accounting_method: AccountingMethod
    fiscal_year_start: date
    vat_period: VatPeriod | None = None
    regon: str | None = None
    email: str | None = None
    tax_office_code: str | None = None
    short_name: str | None = None
    vat_exemption_reason: str | None = None


@dataclass(frozen=True, slots=True)
class Counterparty:
    id: str
    full_name: str
    nip: str | None = None
    address: Address | None = None
    is_eu_company: bool = False
    is_non_eu_company: bool = False
    country_code: str | None = None


@dataclass(frozen=True, slots=True)
class VatAmount:
    rate_code: RateCode
    net_amount: Decimal
    vat_amount: Decimal
    gross_amount: Decimal
    is_reverse_charge: bool = False
    is_import: bool = False
    is_intra_community: bool = False


@dataclass(frozen=True, slots=True)
class VatRegisterEntry:
    id: str
    entry_type: EntryType
    document_type: DocumentType
    document_number: str
    issue_date: date | None
    counterparty_id: str
    counterparty_name: str
    counterparty_country: str
    amounts: tuple[VatAmount, ...]
    total_net: Decimal
    total_vat: Decimal
    total_gross: Decimal
    period: str
    sale_date: date | None = None
    receipt_date: date | None = None
    counterparty_nip: str | None = None
    gtu_codes: frozenset[GtuCode] = frozenset()
    procedures: frozenset[ProcedureMarker] = frozenset()
    corrects_entry_id: str | None = None
    correction_reason: str | None = None


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    document_kind: DocumentKind
    schema_version: str
    period: str
    company: CompanyProfile
    entries: tuple[VatRegisterEntry, ...] = ()
    purpose: SubmissionPurpose = SubmissionPurpose.ORIGINAL
    correction_number: int | None = None
    system_name: str = "JPKTool"
    generated_by: str = ""
    generated_at: datetime | None = None
    counterparties: Mapping[str, Counterparty] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True, slots=True)
class Finding:
    code: FindingCode
    message: str
    severity: Severity
    field: str | None = None


def error(code: FindingCode, message: str, field: str | None = None) -> Finding:
    return Finding(code=code, message=message, severity=Severity.ERROR, field=field)


def warning(code: FindingCode, message: str, field: str | None = None) -> Finding:
    return Finding(code=code, message=message, severity=Severity.WARNING, field=field)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    errors: tuple[Finding, ...] = ()
    warnings: tuple[Finding, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class GenerationResult:
    success: bool
    generated_at: datetime
    document: bytes | None = None
    errors: tuple[Finding, ...] = ()
    warnings: tuple[Finding, ...] = ()
    byte_size: int = 0
    row_count: int = 0

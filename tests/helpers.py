from datetime import date, datetime, timezone
from decimal import Decimal

from jpktool.models import (
    AccountingMethod,
    Address,
    CompanyProfile,
    DocumentKind,
    DocumentType,
    EntryType,
    GenerationRequest,
    LegalForm,
    RateCode,
    VatAmount,
    VatPeriod,
    VatRegisterEntry,
    VatStatus,
)

COMPANY_NIP = "5260250274"
CUSTOMER_NIP = "1234563218"
BAD_NIP = "1234563219"
PINNED_AT = datetime(2024, 3, 5, 10, 15, 30, tzinfo=timezone.utc)


def make_company(**overrides):
    values = dict(
        nip=COMPANY_NIP,
        full_name="Przykladowa Spolka z o.o.",
        address=Address(street="Prosta", building_number="1", postal_code="00-001", city="Warszawa"),
        vat_status=VatStatus.ACTIVE,
        legal_form=LegalForm.SPOLKA,
        accounting_method=AccountingMethod.FULL,
        fiscal_year_start=date(2024, 1, 1),
        vat_period=VatPeriod.MONTHLY,
        tax_office_code="1471",
    )
    values.update(overrides)
    return CompanyProfile(**values)


def make_amount(rate="23", net="1000.00", vat="230.00", gross=None, **flags):
    net, vat = Decimal(net), Decimal(vat)
    return VatAmount(
        rate_code=RateCode.parse(rate),
        net_amount=net,
        vat_amount=vat,
        gross_amount=Decimal(gross) if gross is not None else net + vat,
        **flags,
    )


def make_entry(
    entry_id="E1",
    entry_type=EntryType.SALES,
    amounts=None,
    document_number="FV/1/2024",
    issue_date=date(2024, 2, 10),
    counterparty_nip=CUSTOMER_NIP,
    **overrides,
):
    amounts = tuple(amounts) if amounts is not None else (make_amount(),)
    values = dict(
        id=entry_id,
        entry_type=entry_type,
        document_type=DocumentType.FA,
        document_number=document_number,
        issue_date=issue_date,
        counterparty_id=f"C-{entry_id}",
        counterparty_name="Kontrahent S.A.",
        counterparty_country="PL",
        amounts=amounts,
        total_net=sum((a.net_amount for a in amounts), Decimal("0")),
        total_vat=sum((a.vat_amount for a in amounts), Decimal("0")),
        total_gross=sum((a.gross_amount for a in amounts), Decimal("0")),
        period="2024-02",
        counterparty_nip=counterparty_nip,
    )
    values.update(overrides)
    return VatRegisterEntry(**values)


def make_purchase(entry_id="P1", amounts=None, document_number="ZAK/1/2024", **overrides):
    if amounts is None:
        amounts = (make_amount("23", "400.00", "92.00"),)
    return make_entry(
        entry_id=entry_id,
        entry_type=EntryType.PURCHASE,
        amounts=amounts,
        document_number=document_number,
        **overrides,
    )


def make_request(entries=(), **overrides):
    values = dict(
        document_kind=DocumentKind.V7M,
        schema_version="3",
        period="2024-02",
        company=make_company(),
        entries=tuple(entries),
        generated_at=PINNED_AT,
        generated_by="tester",
    )
    values.update(overrides)
    return GenerationRequest(**values)


def codes(findings):
    return [f.code for f in findings]

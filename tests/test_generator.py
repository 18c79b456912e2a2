from jpktool import generator
from jpktool.generator import generate
from jpktool.models import DocumentKind, FindingCode, Severity
from helpers import BAD_NIP, PINNED_AT, codes, make_company, make_entry, make_request


def test_successful_generation(simple_request):
    result = generate(simple_request)
    assert result.success
    assert result.errors == ()
    assert result.document.startswith(b"<?xml")
    assert result.byte_size == len(result.document)
    assert result.row_count == 2
    assert result.generated_at == PINNED_AT


def test_warnings_do_not_block_generation():
    result = generate(make_request([make_entry(counterparty_nip=BAD_NIP)]))
    assert result.success
    assert result.document is not None
    assert codes(result.warnings) == [FindingCode.INVALID_CUSTOMER_NIP]


def test_validation_errors_block_the_document():
    result = generate(make_request([make_entry(document_number="", counterparty_nip=BAD_NIP)]))
    assert not result.success
    assert result.document is None
    assert result.byte_size == 0
    assert result.row_count == 0
    assert FindingCode.MISSING_INVOICE_NUMBER in codes(result.errors)
    assert FindingCode.INVALID_CUSTOMER_NIP in codes(result.warnings)


def test_invalid_filer_nip_blocks_generation():
    result = generate(make_request([make_entry()], company=make_company(nip=BAD_NIP)))
    assert not result.success
    assert codes(result.errors) == [FindingCode.INVALID_NIP]


def test_contract_violation_becomes_single_error():
    result = generate(make_request([make_entry()], document_kind=DocumentKind.FA))
    assert not result.success
    assert len(result.errors) == 1
    finding = result.errors[0]
    assert finding.code == FindingCode.UNSUPPORTED_DOCUMENT_KIND
    assert finding.severity == Severity.ERROR
    assert "FA" in finding.message
    assert result.generated_at == PINNED_AT


def test_unexpected_exception_becomes_generation_failed(simple_request, monkeypatch):
    def explode(document):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(generator, "serialize_jpk_v7m", explode)
    result = generate(simple_request)
    assert not result.success
    assert codes(result.errors) == [FindingCode.GENERATION_FAILED]
    assert "disk on fire" in result.errors[0].message
    assert result.document is None


def test_crash_in_mapper_is_contained(monkeypatch):
    def explode(request, form, generated_at):
        raise KeyError("boom")

    monkeypatch.setattr(generator, "map_to_jpk_v7m", explode)
    result = generate(make_request([]))
    assert codes(result.errors) == [FindingCode.GENERATION_FAILED]


def test_generation_is_repeatable(simple_request):
    assert generate(simple_request).document == generate(simple_request).document


def test_unpinned_request_is_stamped_once_by_the_orchestrator():
    result = generate(make_request([make_entry()], generated_at=None))
    assert result.success
    assert result.generated_at.tzinfo is not None
    assert result.generated_at.microsecond == 0
    stamp = result.generated_at.strftime("%Y-%m-%dT%H:%M:%SZ").encode()
    assert result.document.count(stamp) == 2

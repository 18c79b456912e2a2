from __future__ import annotations

from datetime import datetime, timezone

import structlog

from jpktool.mapping import MappingContractError, map_to_jpk_v7m
from jpktool.models import Finding, FindingCode, GenerationRequest, GenerationResult, error
from jpktool.schema import DEFAULT_FORM, FormDefinition
from jpktool.validation import DEFAULT_RULES, ValidationRules, validate_jpk_v7m
from jpktool.writer import serialize_jpk_v7m


logger = structlog.get_logger(__name__)


def generate(
    request: GenerationRequest,
    form: FormDefinition = DEFAULT_FORM,
    rules: ValidationRules = DEFAULT_RULES,
) -> GenerationResult:
    """Map, validate and serialize one request into a JPK_V7M(3) document.

    Never raises: mapper contract violations and unexpected failures come back
    as a single error finding on an unsuccessful result.
    """
    log = logger.bind(
        document_kind=_enum_text(request.document_kind),
        schema_version=request.schema_version,
        period=request.period,
        nip=getattr(request.company, "nip", None),
        entry_count=len(request.entries),
    )
    log.info("jpk.generation.started", purpose=_enum_text(request.purpose), generated_by=request.generated_by)
    # the mapper never reads the clock itself
    generated_at = request.generated_at or datetime.now(timezone.utc).replace(microsecond=0)

    try:
        document = map_to_jpk_v7m(request, form, generated_at)
    except MappingContractError as exc:
        log.warning("jpk.generation.rejected", code=exc.code.value, reason=str(exc))
        return _failure(generated_at, (error(exc.code, str(exc)),))
    except Exception as exc:  # noqa: BLE001
        log.exception("jpk.generation.crashed", stage="map")
        return _failure(generated_at, (_crash_finding("map", exc),))

    if document.header is not None:
        generated_at = document.header.generated_at

    try:
        validation = validate_jpk_v7m(document, rules)
    except Exception as exc:  # noqa: BLE001
        log.exception("jpk.generation.crashed", stage="validate")
        return _failure(generated_at, (_crash_finding("validate", exc),))

    if not validation.is_valid:
        log.warning(
            "jpk.validation.failed",
            errors=len(validation.errors),
            warnings=len(validation.warnings),
            codes=sorted({finding.code.value for finding in validation.errors}),
        )
        return _failure(generated_at, validation.errors, validation.warnings)

    try:
        payload = serialize_jpk_v7m(document)
    except Exception as exc:  # noqa: BLE001
        log.exception("jpk.generation.crashed", stage="serialize")
        return _failure(generated_at, (_crash_finding("serialize", exc),), validation.warnings)

    row_count = document.sales_row_count + document.purchase_row_count
    log.info(
        "jpk.generation.completed",
        byte_size=len(payload),
        row_count=row_count,
        warnings=len(validation.warnings),
    )
    return GenerationResult(
        success=True,
        generated_at=generated_at,
        document=payload,
        errors=(),
        warnings=validation.warnings,
        byte_size=len(payload),
        row_count=row_count,
    )


def _failure(
    generated_at: datetime,
    errors: tuple[Finding, ...],
    warnings: tuple[Finding, ...] = (),
) -> GenerationResult:
    return GenerationResult(
        success=False,
        generated_at=generated_at,
        document=None,
        errors=errors,
        warnings=warnings,
        byte_size=0,
        row_count=0,
    )


def _crash_finding(stage: str, exc: Exception) -> Finding:
    return error(FindingCode.GENERATION_FAILED, f"Unexpected failure during {stage}: {exc}")


def _enum_text(value: object) -> str:
    return str(getattr(value, "value", value))

from __future__ import annotations

import csv
import shutil
from pathlib import Path

from jpktool.models import Finding, GenerationResult
from jpktool.version import APP_VERSION


CSV_ENCODING = "utf-8"
CSV_DELIMITER = ","
CSV_NEWLINE = "\r\n"
FINDINGS_COLUMNS = ["severity", "code", "field", "message"]
DOCUMENT_FILE_NAME = "jpk_v7m.xml"
SUMMARY_FIRST_N = 50


def make_run_dir(output_root: str, nip: str, period: str) -> Path:
    """Create ``<output_root>/<nip>/<period>_runNNN`` with the next free run number."""
    nip_dir = Path(output_root) / (nip or "unknown_nip")
    nip_dir.mkdir(parents=True, exist_ok=True)

    prefix = f"{period}_run"
    highest = 0
    for child in nip_dir.iterdir():
        if not child.is_dir() or not child.name.startswith(prefix):
            continue

        suffix = child.name[len(prefix) :]
        if len(suffix) == 3 and suffix.isdigit():
            highest = max(highest, int(suffix))

    run_dir = nip_dir / f"{prefix}{highest + 1:03d}"
    run_dir.mkdir(parents=False, exist_ok=False)
    return run_dir


def copy_input(input_csv: str, run_dir: Path) -> Path:
    target = run_dir / "input_original.csv"
    shutil.copyfile(input_csv, target)
    return target


def write_document(result: GenerationResult, run_dir: Path) -> Path | None:
    if not result.success or result.document is None:
        return None

    target = run_dir / DOCUMENT_FILE_NAME
    target.write_bytes(result.document)
    return target


def write_findings_csv(result: GenerationResult, run_dir: Path) -> Path:
    """Errors first, then warnings, each in the order they were reported."""
    target = run_dir / "findings.csv"
    with target.open("w", encoding=CSV_ENCODING, newline="") as csv_file:
        writer = csv.DictWriter(
            csv_file,
            fieldnames=FINDINGS_COLUMNS,
            delimiter=CSV_DELIMITER,
            lineterminator=CSV_NEWLINE,
        )
        writer.writeheader()
        for finding in (*result.errors, *result.warnings):
            writer.writerow(_finding_row(finding))
    return target


def write_run_summary(
    result: GenerationResult,
    run_dir: Path,
    nip: str,
    period: str,
    operator: str,
    ledger_line_count: int,
    entry_count: int,
    ledger_warnings: list[str],
) -> Path:
    summary_lines = [
        f"app_version: {APP_VERSION}",
        f"nip: {nip}",
        f"period: {period}",
        f"operator: {operator}",
        f"generated_at: {result.generated_at.isoformat()}",
        f"success: {'yes' if result.success else 'no'}",
        f"ledger_line_count: {ledger_line_count}",
        f"entry_count: {entry_count}",
        f"row_count: {result.row_count}",
        f"byte_size: {result.byte_size}",
        f"errors_count: {len(result.errors)}",
        f"warnings_count: {len(result.warnings)}",
        f"ledger_warnings_count: {len(ledger_warnings)}",
        f"findings_first_{SUMMARY_FIRST_N}:",
    ]
    findings = (*result.errors, *result.warnings)
    summary_lines.extend(f"- {_finding_line(finding)}" for finding in findings[:SUMMARY_FIRST_N])
    summary_lines.extend(f"- ledger: {message}" for message in ledger_warnings[:SUMMARY_FIRST_N])

    target = run_dir / "run_summary.txt"
    target.write_text("\n".join(summary_lines) + "\n", encoding="utf-8")
    return target


def _finding_row(finding: Finding) -> dict[str, str]:
    return {
        "severity": finding.severity.value,
        "code": finding.code.value,
        "field": finding.field or "",
        "message": finding.message,
    }


def _finding_line(finding: Finding) -> str:
    location = f" at {finding.field}" if finding.field else ""
    return f"[{finding.severity.value}] {finding.code.value}{location}: {finding.message}"

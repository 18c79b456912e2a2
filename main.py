from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import structlog

from jpktool.config_loader import ConfigError, load_all_configs
from jpktool.default_configs import restore_default_configs
from jpktool.generator import generate
from jpktool.ledger import load_company_profile, load_ledger
from jpktool.models import DocumentKind, GenerationRequest, GenerationResult, SubmissionPurpose
from jpktool.outputs import (
    copy_input,
    make_run_dir,
    write_document,
    write_findings_csv,
    write_run_summary,
)
from jpktool.version import APP_NAME, APP_VERSION


EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_GENERATION_ERRORS = 3

logger = structlog.get_logger(__name__)


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=f"Run the {APP_NAME} JPK_V7M(3) pipeline.")
    parser.add_argument("--input", required=True, help="Path to input ledger CSV.")
    parser.add_argument("--company", required=True, help="Path to company profile JSON.")
    parser.add_argument("--output-root", default="jpktool_out", help="Root output folder.")
    parser.add_argument(
        "--purpose",
        choices=[purpose.value for purpose in SubmissionPurpose],
        default=SubmissionPurpose.ORIGINAL.value,
        help="Submission purpose (original filing or correction).",
    )
    parser.add_argument(
        "--correction-number",
        type=int,
        default=None,
        help="Sequential correction number, used with --purpose correction.",
    )
    parser.add_argument("--operator", default="", help="Name of the person generating the file.")
    parser.add_argument("--system-name", default=APP_NAME, help="Value written to NazwaSystemu.")
    parser.add_argument(
        "--date-mode",
        choices=["auto", "explicit"],
        default="auto",
        help="Date parsing mode for ledger dates.",
    )
    parser.add_argument(
        "--date-format",
        default=None,
        help="Date format for explicit date mode (for example %%d.%%m.%%Y).",
    )
    parser.add_argument("--config-dir", default=None, help="Configuration folder (defaults to ./configs next to the app).")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def default_config_dir() -> Path:
    base_dir = Path(sys.executable).parent if getattr(sys, "frozen", False) else Path(__file__).parent
    return base_dir / "configs"


def run_jpktool(
    input_csv: str,
    company_json: str,
    output_root: str,
    purpose: str = SubmissionPurpose.ORIGINAL.value,
    correction_number: int | None = None,
    operator: str = "",
    system_name: str = APP_NAME,
    date_mode: str = "auto",
    date_format: str | None = None,
    config_dir: str | None = None,
) -> tuple[str, GenerationResult]:
    if config_dir:
        config_path = Path(config_dir)
    else:
        config_path = default_config_dir()
        if not config_path.exists():
            restored = restore_default_configs(str(config_path.parent))
            logger.info("config.restored", config_dir=str(config_path), files=len(restored))

    configs = load_all_configs(str(config_path))
    ledger_columns = configs["mappings"]["ledger_columns"]

    company = load_company_profile(company_json)
    ledger_result = load_ledger(input_csv, ledger_columns, date_mode, date_format)

    request = GenerationRequest(
        document_kind=DocumentKind.V7M,
        schema_version="3",
        period=ledger_result.period,
        company=company,
        entries=ledger_result.entries,
        purpose=SubmissionPurpose(purpose),
        correction_number=correction_number,
        system_name=system_name,
        generated_by=operator,
    )
    result = generate(request, form=configs["form"], rules=configs["rules"])

    run_dir = make_run_dir(output_root, company.nip, ledger_result.period)
    copy_input(input_csv, run_dir)
    write_document(result, run_dir)
    write_findings_csv(result, run_dir)
    write_run_summary(
        result,
        run_dir,
        nip=company.nip,
        period=ledger_result.period,
        operator=operator,
        ledger_line_count=ledger_result.line_count,
        entry_count=len(ledger_result.entries),
        ledger_warnings=ledger_result.warnings,
    )

    return str(run_dir), result


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    logger.debug("cli.started", app_version=APP_VERSION)

    try:
        output_dir, result = run_jpktool(
            input_csv=args.input,
            company_json=args.company,
            output_root=args.output_root,
            purpose=args.purpose,
            correction_number=args.correction_number,
            operator=args.operator,
            system_name=args.system_name,
            date_mode=args.date_mode,
            date_format=args.date_format,
            config_dir=args.config_dir,
        )
    except ConfigError as exc:
        print(f"CONFIG ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except Exception as exc:  # noqa: BLE001
        print(f"RUNTIME ERROR: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    print(f"OUTPUT DIR: {output_dir}")
    print(f"ERRORS: {len(result.errors)}")
    print(f"WARNINGS: {len(result.warnings)}")
    if not result.success:
        return EXIT_GENERATION_ERRORS
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())

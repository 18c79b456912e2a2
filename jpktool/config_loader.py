from __future__ import annotations

import json
import re
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from jpktool.ledger import REQUIRED_LEDGER_KEYS
from jpktool.schema import FormDefinition
from jpktool.validation import ValidationRules

SUPPORTED_CONFIG_VERSION = 1
REQUIRED_CONFIG_TYPES = ("form_definition", "validation_rules", "ledger_columns")
TAX_OFFICE_CODE_PATTERN = re.compile(r"^\d{4}$")


class ConfigError(Exception):
    """Raised when configuration files are invalid."""


def load_all_configs(config_root: str) -> dict[str, Any]:
    root = Path(config_root)
    if not root.exists() or not root.is_dir():
        raise ConfigError(f"Config root does not exist or is not a directory: {config_root}")

    loaded_by_type = _load_and_validate_jsons(root)

    form = _build_form_definition(_get_single_config(loaded_by_type, "form_definition"))
    rules = _build_validation_rules(_get_single_config(loaded_by_type, "validation_rules"))
    ledger_columns = _get_single_config(loaded_by_type, "ledger_columns")
    _validate_ledger_columns(ledger_columns)

    return {
        "form": form,
        "rules": rules,
        "mappings": {
            "ledger_columns": ledger_columns,
        },
    }


def _load_and_validate_jsons(root: Path) -> dict[str, list[dict[str, Any]]]:
    loaded_by_type: dict[str, list[dict[str, Any]]] = {}

    for json_path in sorted(root.rglob("*.json")):
        payload = _read_json(json_path)
        config_type = payload.get("config_type")
        config_version = payload.get("config_version")

        if not isinstance(config_type, str) or not config_type:
            raise ConfigError(f"{json_path}: missing/invalid required key 'config_type' (string expected)")

        # bool is an int subclass
        if not isinstance(config_version, int) or isinstance(config_version, bool):
            raise ConfigError(f"{json_path}: missing/invalid required key 'config_version' (int expected)")

        if config_version != SUPPORTED_CONFIG_VERSION:
            raise ConfigError(
                f"{json_path}: unsupported config_version={config_version}; "
                f"supported version is {SUPPORTED_CONFIG_VERSION}"
            )

        payload["_path"] = str(json_path)
        loaded_by_type.setdefault(config_type, []).append(payload)

    missing = [config_type for config_type in REQUIRED_CONFIG_TYPES if config_type not in loaded_by_type]
    if missing:
        raise ConfigError(f"Missing required config(s) in {root}: {', '.join(missing)}")

    return loaded_by_type


def _read_json(path: Path) -> dict[str, Any]:
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON ({exc.msg})") from exc

    if not isinstance(parsed, dict):
        raise ConfigError(f"{path}: top-level JSON value must be an object")
    return parsed


def _get_single_config(
    loaded_by_type: dict[str, list[dict[str, Any]]],
    config_type: str,
) -> dict[str, Any]:
    entries = loaded_by_type.get(config_type, [])
    if len(entries) != 1:
        paths = ", ".join(entry["_path"] for entry in entries)
        raise ConfigError(f"Expected exactly one '{config_type}' config, found {len(entries)}: {paths}")
    return entries[0]


def _build_form_definition(payload: dict[str, Any]) -> FormDefinition:
    known = {field.name for field in fields(FormDefinition)}
    values: dict[str, str] = {}
    for key, value in payload.items():
        if key not in known:
            continue
        if not _non_empty_string(value):
            raise ConfigError(f"{payload['_path']}: '{key}' must be a non-empty string")
        values[key] = value.strip()

    tax_office_code = values.get("default_tax_office_code")
    if tax_office_code is not None and not TAX_OFFICE_CODE_PATTERN.match(tax_office_code):
        raise ConfigError(f"{payload['_path']}: 'default_tax_office_code' must be exactly 4 digits")

    return FormDefinition(**values)


def _build_validation_rules(payload: dict[str, Any]) -> ValidationRules:
    defaults = ValidationRules()

    tolerance_raw = payload.get("amount_tolerance", str(defaults.amount_tolerance))
    if not isinstance(tolerance_raw, str):
        raise ConfigError(f"{payload['_path']}: 'amount_tolerance' must be a decimal string, e.g. \"0.01\"")
    try:
        tolerance = Decimal(tolerance_raw)
    except InvalidOperation as exc:
        raise ConfigError(f"{payload['_path']}: invalid amount_tolerance {tolerance_raw!r}") from exc
    if not tolerance.is_finite() or tolerance < 0:
        raise ConfigError(f"{payload['_path']}: amount_tolerance must be a non-negative number")

    max_gtu_codes = payload.get("max_gtu_codes", defaults.max_gtu_codes)
    if not isinstance(max_gtu_codes, int) or isinstance(max_gtu_codes, bool) or max_gtu_codes < 1:
        raise ConfigError(f"{payload['_path']}: 'max_gtu_codes' must be a positive int")

    return ValidationRules(amount_tolerance=tolerance, max_gtu_codes=max_gtu_codes)


def _validate_ledger_columns(ledger_columns: dict[str, Any]) -> None:
    missing = [key for key in REQUIRED_LEDGER_KEYS if not _non_empty_string(ledger_columns.get(key))]
    if missing:
        raise ConfigError(
            f"{ledger_columns['_path']}: missing required ledger semantic mappings: " + ", ".join(missing)
        )


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""

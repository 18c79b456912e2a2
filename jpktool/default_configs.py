from __future__ import annotations

from pathlib import Path

DEFAULT_CONFIG_CONTENTS: dict[str, str] = {
    "configs/form-definition.json": """{
    "config_type": "form_definition",
    "config_version": 1,
    "description": "JPK_V7M(3) form identity. Changing these values does not change field placement.",
    "namespace": "http://jpk.mf.gov.pl/wzor/2022/02/17/02171/",
    "etd_namespace": "http://crd.gov.pl/xml/schematy/dziedzinowe/mf/2022/01/05/eDeklaracja/",
    "form_code": "JPK_VAT",
    "system_code": "JPK_V7M (3)",
    "schema_version": "1-0",
    "variant": "3",
    "declaration_form_code": "VAT-7",
    "declaration_system_code": "VAT-7 (21)",
    "declaration_tax_code": "VAT",
    "declaration_obligation_kind": "Z",
    "declaration_schema_version": "1-0E",
    "declaration_variant": "21",
    "default_system_name": "JPKTool",
    "default_tax_office_code": "0000"
}
""",
    "configs/validation-rules.json": """{
    "config_type": "validation_rules",
    "config_version": 1,
    "description": "Tolerances used by the JPK_V7M business-rule checks.",
    "amount_tolerance": "0.01",
    "max_gtu_codes": 3
}
""",
    "configs/mappings/ledger-columns.json": """{
  "config_type": "ledger_columns",
  "config_version": 1,
  "name": "ledger-columns",
  "description": "Semantic VAT register fields mapped to exact ledger CSV column names. One CSV line per VAT amount.",
  "entry_id": "entry_id",
  "entry_type": "entry_type",
  "document_type": "document_type",
  "document_number": "document_number",
  "issue_date": "issue_date",
  "sale_date": "sale_date",
  "receipt_date": "receipt_date",
  "period": "period",
  "counterparty_id": "counterparty_id",
  "counterparty_name": "counterparty_name",
  "counterparty_nip": "counterparty_nip",
  "counterparty_country": "counterparty_country",
  "rate_code": "rate",
  "net_amount": "net",
  "vat_amount": "vat",
  "gross_amount": "gross",
  "is_reverse_charge": "reverse_charge",
  "is_import": "import",
  "is_intra_community": "intra_community",
  "total_net": "total_net",
  "total_vat": "total_vat",
  "total_gross": "total_gross",
  "gtu_codes": "gtu",
  "procedures": "procedures",
  "corrects_entry_id": "corrects_entry_id",
  "correction_reason": "correction_reason"
}
""",
}


def restore_default_configs(base_dir: str, overwrite: bool = True) -> list[Path]:
    """Write the built-in config files under ``base_dir``; returns the files written."""
    written: list[Path] = []
    for rel_path, content in DEFAULT_CONFIG_CONTENTS.items():
        target = Path(base_dir) / rel_path
        if target.exists() and not overwrite:
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        written.append(target)
    return written

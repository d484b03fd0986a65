from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml  # type: ignore[import-untyped]

STORE_BACKENDS = ("memory", "sql")


@dataclass
class OutputsConfig:
    dir: Path


@dataclass
class StoreConfig:
    backend: str = "memory"
    url: str = "sqlite:///suppression.db"


@dataclass
class ColumnsConfig:
    contact_id: str = "contact_id"
    email: str = "email"
    first_name: str = "first_name"
    last_name: str = "last_name"
    full_name: str = "full_name"
    company: str = "company"
    external_id_a: str = "external_id_a"
    external_id_b: str = "external_id_b"
    reason: str = "reason"
    source: str = "source"


@dataclass
class ValidationConfig:
    flag_invalid_entry_emails: bool = True


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class SuppressionConfig:
    inputs: Dict[str, Optional[str]]
    outputs: OutputsConfig
    store: StoreConfig
    columns: ColumnsConfig
    validation: ValidationConfig
    logging: LoggingConfig


def _load_yaml(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_suppression_config(args: argparse.Namespace) -> SuppressionConfig:
    config_data = _load_yaml(getattr(args, "config", None))
    inputs = config_data.get("inputs", {}) or {}
    outputs_cfg = config_data.get("outputs", {}) or {}
    store_cfg = config_data.get("store", {}) or {}
    columns_cfg = config_data.get("columns", {}) or {}
    validation_cfg = config_data.get("validation", {}) or {}
    logging_cfg = config_data.get("logging", {}) or {}

    outputs_dir = Path(getattr(args, "out_dir", None) or outputs_cfg.get("dir") or os.getcwd())
    outputs = OutputsConfig(dir=outputs_dir)

    backend = (getattr(args, "store_backend", None) or store_cfg.get("backend") or "memory").lower()
    if backend not in STORE_BACKENDS:
        raise ValueError(f"Unsupported store backend {backend!r}; expected one of {STORE_BACKENDS}")
    store = StoreConfig(
        backend=backend,
        url=getattr(args, "store_url", None) or store_cfg.get("url") or StoreConfig.url,
    )

    defaults = ColumnsConfig()
    columns = ColumnsConfig(
        **{
            name: str(columns_cfg.get(name) or getattr(defaults, name))
            for name in defaults.__dataclass_fields__
        }
    )

    flag_invalid = validation_cfg.get("flag_invalid_entry_emails", True)
    validation = ValidationConfig(flag_invalid_entry_emails=bool(flag_invalid))

    arg_level = getattr(args, "log_level", None)
    effective_level = (arg_level or logging_cfg.get("level") or "WARNING").upper()
    logging_config = LoggingConfig(level=effective_level)

    resolved_inputs = {
        "contacts_csv": getattr(args, "contacts_csv", None) or inputs.get("contacts_csv"),
        "suppression_csv": getattr(args, "suppression_csv", None)
        or inputs.get("suppression_csv"),
    }

    return SuppressionConfig(
        inputs=resolved_inputs,
        outputs=outputs,
        store=store,
        columns=columns,
        validation=validation,
        logging=logging_config,
    )

from __future__ import annotations

import uuid
from typing import Any, Union

from .config_loader import SuppressionConfig, load_suppression_config
from .evaluator import (
    REASONS,
    RULES,
    evaluate,
    evaluate_bulk,
    evaluate_ids,
    summarize_reasons,
)
from .hashing import compute_compound_hash
from .models import (
    MATCH_FIELDS,
    NO_MATCH,
    ContactRecord,
    InvalidSuppressionEntry,
    MatchVerdict,
    SuppressionEntry,
)
from .normalization import (
    build_suppression_entry,
    normalize_contact_record,
    normalize_email,
    normalize_full_name,
    normalize_identifier,
    normalize_text,
    read_text_csv,
    safe_get,
    update_contact_fields,
    warn_missing,
)
from .sql_store import SqlSuppressionStore
from .store import InMemorySuppressionStore, SuppressionStore

__all__ = [
    "ContactRecord",
    "InMemorySuppressionStore",
    "InvalidSuppressionEntry",
    "MATCH_FIELDS",
    "MatchVerdict",
    "NO_MATCH",
    "REASONS",
    "RULES",
    "SqlSuppressionStore",
    "SuppressionConfig",
    "SuppressionEntry",
    "SuppressionStore",
    "build_suppression_entry",
    "compute_compound_hash",
    "deterministic_uuid",
    "ensure_contact_record",
    "evaluate",
    "evaluate_bulk",
    "evaluate_ids",
    "load_config",
    "normalize_contact_record",
    "normalize_email",
    "normalize_full_name",
    "normalize_identifier",
    "normalize_text",
    "open_store",
    "read_text_csv",
    "safe_get",
    "summarize_reasons",
    "update_contact_fields",
    "warn_missing",
]


def deterministic_uuid(namespace_str: str) -> str:
    namespace = uuid.UUID("12345678-1234-5678-1234-567812345678")
    return str(uuid.uuid5(namespace, namespace_str))


def load_config(args: Any) -> SuppressionConfig:
    return load_suppression_config(args)


def open_store(config: SuppressionConfig) -> Union[InMemorySuppressionStore, SqlSuppressionStore]:
    if config.store.backend == "sql":
        return SqlSuppressionStore.from_url(config.store.url)
    return InMemorySuppressionStore()


def ensure_contact_record(obj: Any) -> ContactRecord:
    """Coerce a mapping into a normalized ContactRecord; records pass through untouched."""
    if isinstance(obj, ContactRecord):
        return obj
    if isinstance(obj, dict):
        return normalize_contact_record(ContactRecord.from_mapping(obj))
    raise TypeError(f"Unsupported contact payload type: {type(obj)!r}")
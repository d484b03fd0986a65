from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Optional

import pandas as pd
from email_validator import EmailNotValidError, validate_email

from .hashing import compute_compound_hash
from .models import (
    DERIVED_CONTACT_FIELDS,
    RAW_CONTACT_FIELDS,
    ContactRecord,
    InvalidSuppressionEntry,
    SuppressionEntry,
)

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def _coerce_to_string(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        try:
            if pd.isna(value):
                return ""
        except (TypeError, ValueError):
            pass
        value = str(value)
    return value.strip()


def normalize_email(raw: Any) -> Optional[str]:
    s = _coerce_to_string(raw)
    return s.lower() if s else None


def normalize_text(raw: Any) -> Optional[str]:
    s = _coerce_to_string(raw)
    if not s:
        return None
    return _WHITESPACE_RE.sub(" ", s).lower()


def normalize_full_name(first: Any, last: Any) -> Optional[str]:
    parts = [_coerce_to_string(first), _coerce_to_string(last)]
    return normalize_text(" ".join(parts))


def normalize_identifier(raw: Any) -> Optional[str]:
    s = _coerce_to_string(raw)
    return s or None


def email_looks_valid(raw: Any) -> bool:
    candidate = _coerce_to_string(raw)
    if not candidate:
        return False
    try:
        validate_email(candidate, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def normalize_contact_record(record: ContactRecord) -> ContactRecord:
    """Recompute the derived suppression fields from the raw contact fields."""
    record.external_id_a = _coerce_to_string(record.external_id_a)
    record.external_id_b = _coerce_to_string(record.external_id_b)
    record.email_norm = normalize_email(record.email)
    record.full_name_norm = normalize_full_name(record.first_name, record.last_name)
    record.company_norm = normalize_text(record.company)
    record.compound_key = compute_compound_hash(record.full_name_norm, record.company_norm)
    return record


def update_contact_fields(record: ContactRecord, **changes: Any) -> ContactRecord:
    """
    Write raw contact fields and refresh the derived cache in one step.

    Derived fields cannot be written directly; they only change as a
    consequence of their raw inputs.
    """
    for name in changes:
        if name in DERIVED_CONTACT_FIELDS:
            raise TypeError(f"{name} is derived and cannot be set directly")
        if name not in RAW_CONTACT_FIELDS:
            raise TypeError(f"Unknown contact field: {name}")
    for name, value in changes.items():
        setattr(record, name, _coerce_to_string(value))
    return normalize_contact_record(record)


def build_suppression_entry(
    email: Any = None,
    full_name: Any = None,
    company_name: Any = None,
    external_id_a: Any = None,
    external_id_b: Any = None,
    reason: Any = None,
    source: Any = None,
    first_name: Any = None,
    last_name: Any = None,
    created_at: Optional[datetime] = None,
) -> SuppressionEntry:
    if _coerce_to_string(full_name):
        full_name_norm = normalize_text(full_name)
    else:
        full_name_norm = normalize_full_name(first_name, last_name)
    company_norm = normalize_text(company_name)
    entry = SuppressionEntry(
        email_norm=normalize_email(email),
        external_id_a=normalize_identifier(external_id_a),
        external_id_b=normalize_identifier(external_id_b),
        compound_key=compute_compound_hash(full_name_norm, company_norm),
        full_name_norm=full_name_norm,
        company_norm=company_norm,
        reason=_coerce_to_string(reason),
        source=_coerce_to_string(source),
        created_at=created_at or datetime.now(timezone.utc),
    )
    if not entry.has_matchable_value:
        raise InvalidSuppressionEntry(
            "Suppression entry needs an email, an external id, or both full name and company"
        )
    return entry


def read_text_csv(path: Optional[str]) -> pd.DataFrame:
    """Read a CSV with every cell as a string and blanks kept as ``""``."""
    if not path:
        return pd.DataFrame()
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def safe_get(row: pd.Series, key: str) -> str:
    return _coerce_to_string(row.get(key, ""))


def warn_missing(path: Optional[str], label: str) -> bool:
    if not path or not os.path.exists(path):
        logger.warning("%s path missing: %s", label, path)
        return True
    return False

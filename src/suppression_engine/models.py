from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

FIELD_EMAIL = "email_norm"
FIELD_EXTERNAL_ID_A = "external_id_a"
FIELD_EXTERNAL_ID_B = "external_id_b"
FIELD_COMPOUND_KEY = "compound_key"

MATCH_FIELDS: Tuple[str, ...] = (
    FIELD_EMAIL,
    FIELD_EXTERNAL_ID_A,
    FIELD_EXTERNAL_ID_B,
    FIELD_COMPOUND_KEY,
)

RAW_CONTACT_FIELDS: Tuple[str, ...] = (
    "contact_id",
    "email",
    "first_name",
    "last_name",
    "company",
    "external_id_a",
    "external_id_b",
)

DERIVED_CONTACT_FIELDS: Tuple[str, ...] = (
    "email_norm",
    "full_name_norm",
    "company_norm",
    "compound_key",
)


class InvalidSuppressionEntry(ValueError):
    """Raised when a suppression entry carries no matchable value."""


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class ContactRecord:
    contact_id: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    external_id_a: str = ""
    external_id_b: str = ""
    # derived cache, recomputed by normalization.normalize_contact_record
    email_norm: Optional[str] = None
    full_name_norm: Optional[str] = None
    company_norm: Optional[str] = None
    compound_key: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Dict[str, Any]) -> "ContactRecord":
        return cls(
            contact_id=str(payload.get("contact_id", "") or "").strip(),
            email=str(payload.get("email", "") or "").strip(),
            first_name=str(payload.get("first_name", "") or "").strip(),
            last_name=str(payload.get("last_name", "") or "").strip(),
            company=str(payload.get("company", "") or "").strip(),
            external_id_a=str(payload.get("external_id_a", "") or "").strip(),
            external_id_b=str(payload.get("external_id_b", "") or "").strip(),
        )

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "contact_id": self.contact_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company": self.company,
            "external_id_a": self.external_id_a,
            "external_id_b": self.external_id_b,
            "email_norm": self.email_norm,
            "full_name_norm": self.full_name_norm,
            "company_norm": self.company_norm,
            "compound_key": self.compound_key,
        }

    def match_value(self, field_name: str) -> Optional[str]:
        if field_name == FIELD_EMAIL:
            return self.email_norm
        if field_name == FIELD_EXTERNAL_ID_A:
            return _optional_str(self.external_id_a)
        if field_name == FIELD_EXTERNAL_ID_B:
            return _optional_str(self.external_id_b)
        if field_name == FIELD_COMPOUND_KEY:
            return self.compound_key
        raise KeyError(f"Unknown match field: {field_name!r}")


@dataclass(frozen=True)
class SuppressionEntry:
    email_norm: Optional[str] = None
    external_id_a: Optional[str] = None
    external_id_b: Optional[str] = None
    compound_key: Optional[str] = None
    full_name_norm: Optional[str] = None
    company_norm: Optional[str] = None
    reason: str = ""
    source: str = ""
    created_at: Optional[datetime] = None
    entry_id: Optional[int] = None

    def matchable_values(self) -> Dict[str, str]:
        values = {
            FIELD_EMAIL: self.email_norm,
            FIELD_EXTERNAL_ID_A: self.external_id_a,
            FIELD_EXTERNAL_ID_B: self.external_id_b,
            FIELD_COMPOUND_KEY: self.compound_key,
        }
        return {name: value for name, value in values.items() if value}

    @property
    def has_matchable_value(self) -> bool:
        return bool(self.matchable_values())


@dataclass(frozen=True)
class MatchVerdict:
    reason: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.reason is not None

    @classmethod
    def for_reason(cls, reason: Optional[str]) -> "MatchVerdict":
        return NO_MATCH if reason is None else cls(reason=reason)


NO_MATCH = MatchVerdict()

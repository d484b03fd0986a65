from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .common import deterministic_uuid
from .config_loader import ColumnsConfig
from .models import ContactRecord, InvalidSuppressionEntry, SuppressionEntry
from .normalization import (
    build_suppression_entry,
    email_looks_valid,
    normalize_contact_record,
    read_text_csv,
    safe_get,
    warn_missing,
)

logger = logging.getLogger(__name__)


@dataclass
class SuppressionImport:
    entries: List[SuppressionEntry] = field(default_factory=list)
    rejected: List[Dict[str, str]] = field(default_factory=list)
    flagged_emails: List[str] = field(default_factory=list)


def load_contacts_csv(path: Optional[str], columns: Optional[ColumnsConfig] = None) -> List[ContactRecord]:
    columns = columns or ColumnsConfig()
    if warn_missing(path, "Contacts CSV"):
        return []
    df = read_text_csv(path)
    records: List[ContactRecord] = []
    for idx, row in df.iterrows():
        contact_id = safe_get(row, columns.contact_id) or deterministic_uuid(f"{path}:{idx}")
        record = ContactRecord(
            contact_id=contact_id,
            email=safe_get(row, columns.email),
            first_name=safe_get(row, columns.first_name),
            last_name=safe_get(row, columns.last_name),
            company=safe_get(row, columns.company),
            external_id_a=safe_get(row, columns.external_id_a),
            external_id_b=safe_get(row, columns.external_id_b),
        )
        records.append(normalize_contact_record(record))
    logger.info("Loaded %d contact(s) from %s", len(records), path)
    return records


def load_suppression_csv(
    path: Optional[str],
    columns: Optional[ColumnsConfig] = None,
    flag_invalid_emails: bool = True,
) -> SuppressionImport:
    columns = columns or ColumnsConfig()
    result = SuppressionImport()
    if warn_missing(path, "Suppression CSV"):
        return result
    df = read_text_csv(path)
    for idx, row in df.iterrows():
        email = safe_get(row, columns.email)
        try:
            entry = build_suppression_entry(
                email=email,
                full_name=safe_get(row, columns.full_name),
                first_name=safe_get(row, columns.first_name),
                last_name=safe_get(row, columns.last_name),
                company_name=safe_get(row, columns.company),
                external_id_a=safe_get(row, columns.external_id_a),
                external_id_b=safe_get(row, columns.external_id_b),
                reason=safe_get(row, columns.reason),
                source=safe_get(row, columns.source) or "csv_import",
            )
        except InvalidSuppressionEntry as exc:
            rejected = {str(col): safe_get(row, str(col)) for col in df.columns}
            rejected["row"] = str(idx)
            rejected["error"] = str(exc)
            result.rejected.append(rejected)
            continue
        # flagged entries are still kept; a typo'd address is still a suppression request
        if flag_invalid_emails and email and not email_looks_valid(email):
            result.flagged_emails.append(email)
        result.entries.append(entry)

    if result.rejected:
        logger.warning(
            "Rejected %d suppression row(s) without an email, external id, or name+company",
            len(result.rejected),
        )
    if result.flagged_emails:
        logger.warning(
            "Kept %d suppression email(s) that fail syntax validation -> %s",
            len(result.flagged_emails),
            ", ".join(result.flagged_emails[:5]),
        )
    logger.info("Loaded %d suppression entr(ies) from %s", len(result.entries), path)
    return result

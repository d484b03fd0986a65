from __future__ import annotations

import hashlib
from typing import Optional

COMPOUND_KEY_SEPARATOR = "|"


def compute_compound_hash(
    full_name_norm: Optional[str], company_norm: Optional[str]
) -> Optional[str]:
    """
    Digest the normalized full name and company into a single compound key.

    Returns ``None`` unless both parts are non-empty. The digest is SHA-256 over
    the UTF-8 bytes of ``"<name>|<company>"`` in lower-case hex, which is the
    same value PostgreSQL produces with
    ``ENCODE(DIGEST(name || '|' || company, 'sha256'), 'hex')``.
    """
    if not full_name_norm or not full_name_norm.strip():
        return None
    if not company_norm or not company_norm.strip():
        return None
    payload = f"{full_name_norm}{COMPOUND_KEY_SEPARATOR}{company_norm}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()

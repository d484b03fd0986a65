from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from .models import (
    FIELD_COMPOUND_KEY,
    FIELD_EMAIL,
    FIELD_EXTERNAL_ID_A,
    FIELD_EXTERNAL_ID_B,
    NO_MATCH,
    ContactRecord,
    MatchVerdict,
)
from .store import SuppressionStore, matched_fields

logger = logging.getLogger(__name__)

REASON_EMAIL = "email"
REASON_EXTERNAL_ID_A = "external_id_a"
REASON_EXTERNAL_ID_B = "external_id_b"
REASON_COMPOUND_KEY = "compound_key"


@dataclass(frozen=True)
class MatchRule:
    reason: str
    field: str


# Order is significant: the first rule that fires decides the reported reason.
RULES = (
    MatchRule(REASON_EMAIL, FIELD_EMAIL),
    MatchRule(REASON_EXTERNAL_ID_A, FIELD_EXTERNAL_ID_A),
    MatchRule(REASON_EXTERNAL_ID_B, FIELD_EXTERNAL_ID_B),
    MatchRule(REASON_COMPOUND_KEY, FIELD_COMPOUND_KEY),
)

REASONS = tuple(rule.reason for rule in RULES)


def _first_reason(
    contact: ContactRecord, is_hit: Callable[[MatchRule, str], bool]
) -> Optional[str]:
    for rule in RULES:
        value = contact.match_value(rule.field)
        if not value:
            continue
        if is_hit(rule, value):
            return rule.reason
    return None


def evaluate(contact: ContactRecord, store: SuppressionStore) -> MatchVerdict:
    """
    Decide whether ``contact`` must be excluded from outreach.

    The contact's derived fields must already be current (see
    ``normalization.normalize_contact_record``). Store errors propagate.
    """
    with store.read_snapshot() as lookup:
        reason = _first_reason(contact, lambda rule, value: lookup.contains(rule.field, value))
    return MatchVerdict.for_reason(reason)


def evaluate_bulk(
    contacts: Iterable[ContactRecord], store: SuppressionStore
) -> Dict[str, MatchVerdict]:
    """
    Evaluate many contacts against one snapshot of the suppression list.

    Returns only matched contacts, keyed by ``contact_id``. For every contact
    the verdict is the one ``evaluate`` would return.
    """
    by_id: Dict[str, ContactRecord] = {}
    for contact in contacts:
        if not contact.contact_id:
            logger.debug("Skipping contact without an id: %r", contact)
            continue
        # a repeated id is the same contact; its latest record wins
        by_id[contact.contact_id] = contact
    batch = list(by_id.values())

    results: Dict[str, MatchVerdict] = {}
    if not batch:
        return results

    with store.read_snapshot() as lookup:
        hits = matched_fields(lookup, batch)

    for contact in batch:
        contact_hits = hits.get(contact.contact_id, frozenset())
        reason = _first_reason(contact, lambda rule, value: rule.field in contact_hits)
        if reason is not None:
            results[contact.contact_id] = MatchVerdict.for_reason(reason)

    logger.info("Suppression check: %d of %d contact(s) matched", len(results), len(batch))
    return results


def evaluate_ids(
    contact_ids: Sequence[str],
    contacts_by_id: Mapping[str, ContactRecord],
    store: SuppressionStore,
) -> Dict[str, MatchVerdict]:
    known = []
    for contact_id in OrderedDict.fromkeys(contact_ids):
        contact = contacts_by_id.get(contact_id)
        if contact is None:
            logger.debug("Unknown contact id %s; treating as no match", contact_id)
            continue
        known.append(contact)
    return evaluate_bulk(known, store)


def summarize_reasons(verdicts: Mapping[str, MatchVerdict]) -> Dict[str, int]:
    counts = {reason: 0 for reason in REASONS}
    for verdict in verdicts.values():
        if verdict.matched:
            counts[verdict.reason] = counts.get(verdict.reason, 0) + 1
    return counts


def verdict_for(contact_id: str, verdicts: Mapping[str, MatchVerdict]) -> MatchVerdict:
    return verdicts.get(contact_id, NO_MATCH)


__all__ = [
    "REASONS",
    "REASON_COMPOUND_KEY",
    "REASON_EMAIL",
    "REASON_EXTERNAL_ID_A",
    "REASON_EXTERNAL_ID_B",
    "RULES",
    "MatchRule",
    "evaluate",
    "evaluate_bulk",
    "evaluate_ids",
    "summarize_reasons",
    "verdict_for",
]

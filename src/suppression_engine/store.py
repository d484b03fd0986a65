from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import (
    ContextManager,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Protocol,
    Sequence,
    Set,
)

from .models import MATCH_FIELDS, ContactRecord, InvalidSuppressionEntry, SuppressionEntry

logger = logging.getLogger(__name__)


class SuppressionLookup(Protocol):
    """Read-only view of one consistent suppression-list snapshot."""

    def contains(self, field_name: str, value: str) -> bool:
        ...

    def matching_values(self, field_name: str, values: Iterable[str]) -> Set[str]:
        ...


class SuppressionStore(Protocol):
    def read_snapshot(self) -> ContextManager[SuppressionLookup]:
        ...


def _check_field(field_name: str) -> None:
    if field_name not in MATCH_FIELDS:
        raise KeyError(f"Unknown match field: {field_name!r}")


def matched_fields(
    lookup: SuppressionLookup, contacts: Sequence[ContactRecord]
) -> Dict[str, FrozenSet[str]]:
    """
    Report, per contact id, which matchable fields hit the suppression list.

    Issues one set-membership probe per field rather than one per contact.
    Contacts whose values hit nothing are omitted.
    """
    hit_values: Dict[str, Set[str]] = {}
    for field_name in MATCH_FIELDS:
        values = {contact.match_value(field_name) for contact in contacts}
        values.discard(None)
        values.discard("")
        hit_values[field_name] = lookup.matching_values(field_name, values) if values else set()

    results: Dict[str, FrozenSet[str]] = {}
    for contact in contacts:
        fields = frozenset(
            field_name
            for field_name in MATCH_FIELDS
            if contact.match_value(field_name) in hit_values[field_name]
        )
        if fields:
            results[contact.contact_id] = fields
    return results


class _IndexLookup:
    def __init__(self, index: Mapping[str, FrozenSet[str]]):
        self._index = index

    def contains(self, field_name: str, value: str) -> bool:
        _check_field(field_name)
        return bool(value) and value in self._index[field_name]

    def matching_values(self, field_name: str, values: Iterable[str]) -> Set[str]:
        _check_field(field_name)
        return {value for value in values if value} & self._index[field_name]


class InMemorySuppressionStore:
    """
    Suppression list held in process memory.

    Writers build a new index and swap it in under a lock, so a snapshot
    taken by a reader never sees a partially applied batch of entries.
    """

    def __init__(self, entries: Iterable[SuppressionEntry] = ()):
        self._lock = threading.Lock()
        self._entries: List[SuppressionEntry] = []
        self._index: Dict[str, FrozenSet[str]] = {name: frozenset() for name in MATCH_FIELDS}
        self.add_entries(entries)

    def add_entries(self, entries: Iterable[SuppressionEntry]) -> int:
        batch = list(entries)
        for entry in batch:
            if not entry.has_matchable_value:
                raise InvalidSuppressionEntry(f"Suppression entry has no matchable value: {entry!r}")
        if not batch:
            return 0
        with self._lock:
            staged = {name: set(values) for name, values in self._index.items()}
            for entry in batch:
                for field_name, value in entry.matchable_values().items():
                    staged[field_name].add(value)
            self._entries = self._entries + batch
            self._index = {name: frozenset(values) for name, values in staged.items()}
        logger.debug("Added %d suppression entries (total %d)", len(batch), len(self._entries))
        return len(batch)

    def entries(self) -> List[SuppressionEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @contextmanager
    def read_snapshot(self) -> Iterator[SuppressionLookup]:
        yield _IndexLookup(self._index)


__all__ = [
    "InMemorySuppressionStore",
    "SuppressionLookup",
    "SuppressionStore",
    "matched_fields",
]

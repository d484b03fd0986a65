"""SQLAlchemy-backed suppression list.

The ``suppression_list`` table keeps one index per matchable column so both
the single-contact existence checks and the batched ``IN`` probes stay cheap
as the list grows. Every snapshot runs inside one transaction that sees a
single point in time: REPEATABLE READ on server databases, and on SQLite an
explicit BEGIN with WAL journaling so writers can commit while a snapshot is
open. Database errors are raised to the caller as-is.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Engine,
    Integer,
    Text,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from .models import (
    FIELD_COMPOUND_KEY,
    FIELD_EMAIL,
    FIELD_EXTERNAL_ID_A,
    FIELD_EXTERNAL_ID_B,
    MATCH_FIELDS,
    InvalidSuppressionEntry,
    SuppressionEntry,
)

logger = logging.getLogger(__name__)

# Stays well under the bound-parameter limits of SQLite and PostgreSQL.
IN_CLAUSE_CHUNK_SIZE = 500


class Base(DeclarativeBase):
    pass


class SuppressionListRow(Base):
    __tablename__ = "suppression_list"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email_norm: Mapped[Optional[str]] = mapped_column(Text, index=True)
    external_id_a: Mapped[Optional[str]] = mapped_column(Text, index=True)
    external_id_b: Mapped[Optional[str]] = mapped_column(Text, index=True)
    compound_key: Mapped[Optional[str]] = mapped_column(Text, index=True)
    full_name_norm: Mapped[Optional[str]] = mapped_column(Text)
    company_norm: Mapped[Optional[str]] = mapped_column(Text)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    source: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "email_norm IS NOT NULL OR external_id_a IS NOT NULL "
            "OR external_id_b IS NOT NULL OR compound_key IS NOT NULL",
            name="suppression_list_matchable_check",
        ),
    )

    @classmethod
    def from_entry(cls, entry: SuppressionEntry) -> "SuppressionListRow":
        row = cls(
            email_norm=entry.email_norm,
            external_id_a=entry.external_id_a,
            external_id_b=entry.external_id_b,
            compound_key=entry.compound_key,
            full_name_norm=entry.full_name_norm,
            company_norm=entry.company_norm,
            reason=entry.reason or None,
            source=entry.source or None,
        )
        if entry.created_at is not None:
            row.created_at = entry.created_at
        return row

    def to_entry(self) -> SuppressionEntry:
        return SuppressionEntry(
            email_norm=self.email_norm,
            external_id_a=self.external_id_a,
            external_id_b=self.external_id_b,
            compound_key=self.compound_key,
            full_name_norm=self.full_name_norm,
            company_norm=self.company_norm,
            reason=self.reason or "",
            source=self.source or "",
            created_at=self.created_at,
            entry_id=self.id,
        )


_COLUMNS = {
    FIELD_EMAIL: SuppressionListRow.email_norm,
    FIELD_EXTERNAL_ID_A: SuppressionListRow.external_id_a,
    FIELD_EXTERNAL_ID_B: SuppressionListRow.external_id_b,
    FIELD_COMPOUND_KEY: SuppressionListRow.compound_key,
}


def _column(field_name: str):
    if field_name not in MATCH_FIELDS:
        raise KeyError(f"Unknown match field: {field_name!r}")
    return _COLUMNS[field_name]


class _SessionLookup:
    def __init__(self, session: Session):
        self._session = session

    def contains(self, field_name: str, value: str) -> bool:
        column = _column(field_name)
        if not value:
            return False
        stmt = select(SuppressionListRow.id).where(column == value).limit(1)
        return self._session.execute(stmt).first() is not None

    def matching_values(self, field_name: str, values: Iterable[str]) -> Set[str]:
        column = _column(field_name)
        pending = sorted({value for value in values if value})
        found: Set[str] = set()
        for start in range(0, len(pending), IN_CLAUSE_CHUNK_SIZE):
            chunk = pending[start : start + IN_CLAUSE_CHUNK_SIZE]
            stmt = select(column).where(column.in_(chunk)).distinct()
            found.update(row[0] for row in self._session.execute(stmt))
        return found


def _sqlite_on_connect(dbapi_connection, connection_record) -> None:
    # pysqlite otherwise defers BEGIN until the first write, so reads in a
    # session each see whatever was committed last.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def _sqlite_on_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def _entry_key(entry: SuppressionEntry) -> Tuple[Optional[str], ...]:
    return (entry.email_norm, entry.external_id_a, entry.external_id_b, entry.compound_key)


class SqlSuppressionStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        if engine.dialect.name == "sqlite":
            if not event.contains(engine, "begin", _sqlite_on_begin):
                event.listen(engine, "connect", _sqlite_on_connect)
                event.listen(engine, "begin", _sqlite_on_begin)
            self._snapshot_engine = engine
        else:
            self._snapshot_engine = engine.execution_options(isolation_level="REPEATABLE READ")

    @classmethod
    def from_url(cls, url: str, create_schema: bool = True, **engine_kwargs) -> "SqlSuppressionStore":
        store = cls(create_engine(url, **engine_kwargs))
        if create_schema:
            store.create_schema()
        return store

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def add_entries(self, entries: Iterable[SuppressionEntry], skip_existing: bool = False) -> int:
        """
        Insert a batch of entries in one transaction and return how many rows
        were written. With ``skip_existing`` an entry whose matchable values
        already sit in the table (or earlier in the batch) is left out.
        """
        batch = list(entries)
        for entry in batch:
            if not entry.has_matchable_value:
                raise InvalidSuppressionEntry(f"Suppression entry has no matchable value: {entry!r}")
        if not batch:
            return 0
        with Session(self.engine) as session, session.begin():
            if skip_existing:
                batch = self._new_entries(session, batch)
            session.add_all(SuppressionListRow.from_entry(entry) for entry in batch)
        logger.info("Inserted %d suppression entries", len(batch))
        return len(batch)

    @staticmethod
    def _new_entries(session: Session, batch: List[SuppressionEntry]) -> List[SuppressionEntry]:
        fresh: List[SuppressionEntry] = []
        seen: Set[Tuple[Optional[str], ...]] = set()
        for entry in batch:
            key = _entry_key(entry)
            if key in seen:
                continue
            seen.add(key)
            stmt = (
                select(SuppressionListRow.id)
                .where(SuppressionListRow.email_norm.is_not_distinct_from(entry.email_norm))
                .where(SuppressionListRow.external_id_a.is_not_distinct_from(entry.external_id_a))
                .where(SuppressionListRow.external_id_b.is_not_distinct_from(entry.external_id_b))
                .where(SuppressionListRow.compound_key.is_not_distinct_from(entry.compound_key))
                .limit(1)
            )
            if session.execute(stmt).first() is None:
                fresh.append(entry)
        skipped = len(batch) - len(fresh)
        if skipped:
            logger.info("Skipped %d suppression entries already on the list", skipped)
        return fresh

    def remove_entries(self, entry_ids: Sequence[int]) -> int:
        if not entry_ids:
            return 0
        with Session(self.engine) as session, session.begin():
            result = session.execute(
                delete(SuppressionListRow).where(SuppressionListRow.id.in_(list(entry_ids)))
            )
            removed = result.rowcount or 0
        logger.info("Removed %d suppression entries", removed)
        return removed

    def list_entries(self, limit: int = 100, offset: int = 0) -> Tuple[List[SuppressionEntry], int]:
        with Session(self.engine) as session:
            rows = session.scalars(
                select(SuppressionListRow)
                .order_by(SuppressionListRow.created_at, SuppressionListRow.id)
                .limit(limit)
                .offset(offset)
            ).all()
            total = session.scalar(select(func.count()).select_from(SuppressionListRow)) or 0
            return [row.to_entry() for row in rows], int(total)

    @contextmanager
    def read_snapshot(self) -> Iterator[_SessionLookup]:
        with Session(self._snapshot_engine) as session, session.begin():
            yield _SessionLookup(session)


__all__ = ["Base", "SqlSuppressionStore", "SuppressionListRow"]

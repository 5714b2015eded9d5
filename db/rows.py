"""
db/rows.py -- Generic row store over SQLAlchemy Core.

RowStore is deliberately schema-agnostic: callers name a table and pass
plain dicts. Predicates are equality matches on named columns, ANDed
together. Every statement uses bound parameters; table and column names are
resolved against db/schema.py and never interpolated into SQL.

Error contract:
  UNIQUE / primary-key violations -> DuplicateRow
  any other SQLAlchemyError       -> StorageFault
  unknown table or column         -> ValueError (a programming error)
The original SQLAlchemy exception is chained as __cause__. Nothing here
retries; a caller may re-issue an idempotent select if it chooses to.

Usage:
    rows = RowStore("sqlite:///credgate.db")
    rows.insert("credentials", [{"identifier": "a@example.org", ...}])
    rows.select("credentials", ["id"], {"identifier": "a@example.org"})
    rows.close()

Layer rule: no imports from api/, auth/, or verify/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Table, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.errors import DuplicateRow, StorageFault
from db.schema import metadata

logger = logging.getLogger("credgate.db")

_DEFAULT_DB_URL = "sqlite:///credgate.db"


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


@contextmanager
def _translate_errors(operation: str, table: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise DuplicateRow(f"{operation} on {table} violated a uniqueness constraint.") from exc
    except SQLAlchemyError as exc:
        logger.error("%s on %s failed: %s", operation, table, exc)
        raise StorageFault(f"{operation} on {table} failed.") from exc


class RowStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def create_tables(self) -> None:
        """Create every table in db/schema.py that does not exist yet. Idempotent."""
        with _translate_errors("create_tables", "*"):
            metadata.create_all(self.engine)

    def _table(self, name: str) -> Table:
        try:
            return metadata.tables[name]
        except KeyError:
            raise ValueError(f"Unknown table: {name!r}") from None

    def _where(self, table: Table, where: Mapping[str, Any]):
        clauses = []
        for column, value in where.items():
            if column not in table.c:
                raise ValueError(f"Unknown column {column!r} on {table.name}")
            clauses.append(table.c[column] == value)
        return clauses

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def select(self, table: str, columns: Sequence[str], where: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Return matching rows as dicts restricted to the projected columns.

        An empty projection returns every column.
        """
        t = self._table(table)
        unknown = [c for c in columns if c not in t.c]
        if unknown:
            raise ValueError(f"Unknown columns {unknown!r} on {table}")
        projection = [t.c[c] for c in columns] if columns else [t]
        stmt = select(*projection).where(*self._where(t, where))
        with _translate_errors("select", table), self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().fetchall()
        return [dict(r) for r in rows]

    def count(self, table: str, where: Mapping[str, Any]) -> int:
        t = self._table(table)
        stmt = select(func.count()).select_from(t).where(*self._where(t, where))
        with _translate_errors("count", table), self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> Optional[int]:
        """Insert rows in one transaction and return the last inserted primary key.

        Either every row is written or none is. Raises ValueError on an empty
        batch and DuplicateRow on a uniqueness violation.
        """
        if not rows:
            raise ValueError("No rows to be inserted")
        t = self._table(table)
        last_id = None
        with _translate_errors("insert", table), self.engine.connect() as conn:
            for row in rows:
                result = conn.execute(t.insert().values(**row))
                pk = result.inserted_primary_key
                last_id = pk[0] if pk else None
            conn.commit()
        return last_id

    def update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]) -> int:
        """Apply values to matching rows. Returns the affected row count."""
        t = self._table(table)
        with _translate_errors("update", table), self.engine.connect() as conn:
            result = conn.execute(t.update().where(*self._where(t, where)).values(**values))
            conn.commit()
        return result.rowcount

    def delete(self, table: str, where: Mapping[str, Any]) -> int:
        """Delete matching rows. Returns the affected row count.

        An empty predicate is refused -- it would wipe the table.
        """
        if not where:
            raise ValueError("Refusing to delete without a predicate")
        t = self._table(table)
        with _translate_errors("delete", table), self.engine.connect() as conn:
            result = conn.execute(t.delete().where(*self._where(t, where)))
            conn.commit()
        return result.rowcount

    def delete_older_than(self, table: str, column: str, cutoff: datetime) -> int:
        """Delete rows whose timestamp column is strictly before cutoff."""
        t = self._table(table)
        if column not in t.c:
            raise ValueError(f"Unknown column {column!r} on {table}")
        with _translate_errors("delete", table), self.engine.connect() as conn:
            result = conn.execute(t.delete().where(t.c[column] < cutoff))
            conn.commit()
        return result.rowcount

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        """Dispose the connection pool. Safe to call more than once."""
        self.engine.dispose()

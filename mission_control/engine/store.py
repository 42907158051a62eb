#!/usr/bin/env python3
"""
Mission Control Entity Store

A small document-store facade over the SQLite schema. Rows go in and come
out as plain dicts; JSON and boolean columns are encoded/decoded per table
using schema.TABLE_SPECS.

Every mutating call is its own BEGIN IMMEDIATE transaction. The engine never
wraps several documents in one transaction: a claim is a task patch, then an
agent patch, then an activity insert, each committed independently. The one
concurrency guard the engine relies on is patch_if(), a compare-and-set
UPDATE that only applies when the expected column values still hold.

Table and column names are validated against the live schema before they are
interpolated into SQL.
"""

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from .models import now_iso
from .schema import TABLE_SPECS, TableSpec, create_db

logger = logging.getLogger(__name__)


class Store:
    """
    Entity store wrapping one SQLite connection.

    The connection is shared between threads (FastAPI runs sync work in a
    thread pool), so every statement runs under a re-entrant lock.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.RLock()
        self._columns: dict[str, frozenset[str]] = {}

    @classmethod
    def open(cls, db_path: str | Path) -> "Store":
        """Create or open a database file and apply migrations."""
        return cls(create_db(db_path))

    def close(self) -> None:
        self.conn.close()

    # -----------------------------------------------------------------------
    # Schema validation and encoding
    # -----------------------------------------------------------------------

    def _spec(self, table: str) -> TableSpec:
        try:
            return TABLE_SPECS[table]
        except KeyError:
            raise ValueError(f"Unknown table: '{table}'") from None

    def _table_columns(self, table: str) -> frozenset[str]:
        self._spec(table)
        if table not in self._columns:
            with self._lock:
                rows = self.conn.execute(f"PRAGMA table_info({table})").fetchall()
            self._columns[table] = frozenset(row["name"] for row in rows)
        return self._columns[table]

    def _check_columns(self, table: str, columns: Any) -> None:
        known = self._table_columns(table)
        unknown = sorted(set(columns) - known)
        if unknown:
            raise ValueError(f"Unknown column(s) for table '{table}': {unknown}")

    @staticmethod
    def _encode(spec: TableSpec, column: str, value: Any) -> Any:
        if value is None:
            return None
        if column in spec.json_columns:
            return json.dumps(value)
        if column in spec.bool_columns:
            return 1 if value else 0
        return value

    @staticmethod
    def _decode_row(spec: TableSpec, row: sqlite3.Row) -> dict[str, Any]:
        doc = dict(row)
        for column in spec.json_columns:
            raw = doc.get(column)
            if raw is not None:
                try:
                    doc[column] = json.loads(raw)
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Undecodable JSON in column %s (id=%s)", column, doc.get("id"))
                    doc[column] = None
        for column in spec.bool_columns:
            if column in doc and doc[column] is not None:
                doc[column] = bool(doc[column])
        return doc

    def new_id(self, table: str) -> str:
        return f"{self._spec(table).prefix}-{uuid.uuid4().hex[:12]}"

    # -----------------------------------------------------------------------
    # Transactions
    # -----------------------------------------------------------------------

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Run one write as its own BEGIN IMMEDIATE transaction."""
        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                yield self.conn
                self.conn.execute("COMMIT")
            except Exception:
                try:
                    self.conn.execute("ROLLBACK")
                except Exception:
                    pass
                raise

    # -----------------------------------------------------------------------
    # Single-document operations
    # -----------------------------------------------------------------------

    def get(self, table: str, doc_id: str) -> dict[str, Any] | None:
        spec = self._spec(table)
        with self._lock:
            row = self.conn.execute(
                f"SELECT * FROM {table} WHERE id = ?", (doc_id,)
            ).fetchone()
        return self._decode_row(spec, row) if row is not None else None

    def insert(self, table: str, doc: dict[str, Any]) -> str:
        """Insert a document and return its id (generated when absent)."""
        spec = self._spec(table)
        values = dict(doc)
        values.setdefault("id", self.new_id(table))
        if spec.time_column not in values or values[spec.time_column] is None:
            values[spec.time_column] = now_iso()
        self._check_columns(table, values)

        columns = list(values)
        params = {c: self._encode(spec, c, values[c]) for c in columns}
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(':' + c for c in columns)})"
        )
        with self._write() as conn:
            conn.execute(sql, params)
        return values["id"]

    def patch_if(
        self,
        table: str,
        doc_id: str,
        expected: dict[str, Any],
        fields: dict[str, Any],
    ) -> bool:
        """
        Compare-and-set patch.

        Applies `fields` only when every column in `expected` still holds the
        given value. Returns True if the row was updated, False if the row is
        missing or one of the expectations failed.
        """
        if not fields:
            return self.get(table, doc_id) is not None
        spec = self._spec(table)
        self._check_columns(table, list(fields) + list(expected))

        params: dict[str, Any] = {"__id": doc_id}
        assignments = []
        for i, (column, value) in enumerate(fields.items()):
            assignments.append(f"{column} = :s{i}")
            params[f"s{i}"] = self._encode(spec, column, value)

        conditions = ["id = :__id"]
        for i, (column, value) in enumerate(expected.items()):
            if value is None:
                conditions.append(f"{column} IS NULL")
            else:
                conditions.append(f"{column} = :e{i}")
                params[f"e{i}"] = self._encode(spec, column, value)

        sql = (
            f"UPDATE {table} SET {', '.join(assignments)} "
            f"WHERE {' AND '.join(conditions)}"
        )
        with self._write() as conn:
            cursor = conn.execute(sql, params)
        return cursor.rowcount == 1

    def patch(self, table: str, doc_id: str, fields: dict[str, Any]) -> bool:
        """Unconditional patch. Returns False if the document does not exist."""
        return self.patch_if(table, doc_id, {}, fields)

    def increment(self, table: str, doc_id: str, column: str, amount: int = 1) -> bool:
        self._check_columns(table, [column])
        with self._write() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {column} = {column} + ? WHERE id = ?",
                (amount, doc_id),
            )
        return cursor.rowcount == 1

    def delete(self, table: str, doc_id: str) -> bool:
        self._spec(table)
        with self._write() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (doc_id,))
        return cursor.rowcount == 1

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def _where(
        self,
        table: str,
        where: dict[str, Any] | None,
        since: str | None,
        order_by: str,
    ) -> tuple[str, dict[str, Any]]:
        spec = self._spec(table)
        conditions: list[str] = []
        params: dict[str, Any] = {}
        if where:
            self._check_columns(table, where)
            for i, (column, value) in enumerate(where.items()):
                if value is None:
                    conditions.append(f"{column} IS NULL")
                else:
                    conditions.append(f"{column} = :w{i}")
                    params[f"w{i}"] = self._encode(spec, column, value)
        if since is not None:
            conditions.append(f"{order_by} >= :since")
            params["since"] = since
        clause = "WHERE " + " AND ".join(conditions) if conditions else ""
        return clause, params

    def query(
        self,
        table: str,
        where: dict[str, Any] | None = None,
        *,
        order: str = "asc",
        order_by: str | None = None,
        since: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Equality-filtered, ordered query.

        Args:
            table: Table name (must be in TABLE_SPECS)
            where: {column: value} equality filters, combined with AND
                   (a None value matches NULL)
            order: "asc" or "desc"
            order_by: Ordering column (default: the table's time column).
                      rowid breaks ties so insertion order is stable.
            since: Only rows whose order_by column is >= this value
            limit: Maximum rows
        """
        spec = self._spec(table)
        if order not in ("asc", "desc"):
            raise ValueError(f"order must be 'asc' or 'desc', got '{order}'")
        order_by = order_by or spec.time_column
        self._check_columns(table, [order_by])

        clause, params = self._where(table, where, since, order_by)
        direction = order.upper()
        sql = f"SELECT * FROM {table} {clause} ORDER BY {order_by} {direction}, rowid {direction}"
        if limit is not None:
            sql += " LIMIT :limit"
            params["limit"] = int(limit)

        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [self._decode_row(spec, row) for row in rows]

    def first(
        self,
        table: str,
        where: dict[str, Any] | None = None,
        *,
        order: str = "asc",
        order_by: str | None = None,
    ) -> dict[str, Any] | None:
        rows = self.query(table, where, order=order, order_by=order_by, limit=1)
        return rows[0] if rows else None

    def count(self, table: str, where: dict[str, Any] | None = None) -> int:
        spec = self._spec(table)
        clause, params = self._where(table, where, None, spec.time_column)
        with self._lock:
            row = self.conn.execute(
                f"SELECT COUNT(*) AS n FROM {table} {clause}", params
            ).fetchone()
        return row["n"]

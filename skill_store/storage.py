"""Lightweight SQLite-backed store for the skill graph."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator


class SkillGraphStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        """Create a connection, ensuring the parent directory exists."""

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(self.db_path)
        con.execute("PRAGMA foreign_keys = ON")
        return con

    def _ensure_schema(self) -> None:
        schema_sql = Path(__file__).with_name("schema.sql").read_text(encoding="utf-8")
        with self._connect() as con:
            con.executescript(schema_sql)

    def execute(self, sql: str, params: tuple | None = None) -> int:
        """Execute a single SQL statement and return the last row id (if any)."""

        with self._connect() as con:
            cur = con.execute(sql, params or tuple())
            con.commit()
            return int(cur.lastrowid or 0)

    def execute_many(self, sql: str, rows: Iterable[tuple]) -> None:
        buffered_rows = list(rows)
        if not buffered_rows:
            return
        with self._connect() as con:
            con.executemany(sql, buffered_rows)
            con.commit()

    def query(self, sql: str, params: tuple | None = None) -> list[tuple]:
        with self._connect() as con:
            cur = con.execute(sql, params or tuple())
            return cur.fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose statements commit together or not at all."""

        con = self._connect()
        try:
            yield con
            con.commit()
        except BaseException:
            con.rollback()
            raise
        finally:
            con.close()

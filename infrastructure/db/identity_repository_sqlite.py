from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from domain.errors import RegistrationWriteError, StoreUnavailableError
from domain.models import Account, AliasBinding
from domain.repositories import IdentityRepository

logger = logging.getLogger(__name__)


class SqliteIdentityRepository(IdentityRepository):
    """
    SQLite-backed implementation of `IdentityRepository`.

    Stores accounts in an `account` table and game usernames in an
    `alias_binding` table. It is self-initialising: both tables are created
    if needed. A fresh connection is opened for every operation, so nothing
    is cached in-process.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_tables()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        # SQLite's LOWER only folds ASCII; match the service's str.lower().
        conn.create_function("casefold_alias", 1, str.lower, deterministic=True)
        return conn

    def _ensure_tables(self) -> None:
        with self._transaction() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS account (
                    account_id TEXT PRIMARY KEY
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS alias_binding (
                    account_id TEXT NOT NULL REFERENCES account (account_id),
                    alias TEXT NOT NULL,
                    UNIQUE (account_id, alias)
                )
                """
            )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Yield a connection whose work is committed only if the block
        completes; any exception rolls it back.
        """

        try:
            conn = self._get_connection()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(
                f"Failed to open SQLite database at {self._db_path}"
            ) from exc

        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _insert_account(self, cur: sqlite3.Cursor, account_id: str) -> None:
        cur.execute(
            """
            INSERT INTO account (account_id)
            SELECT ?
            WHERE NOT EXISTS (SELECT 1 FROM account WHERE account_id = ?)
            """,
            (account_id, account_id),
        )

    def _insert_alias_binding(
        self,
        cur: sqlite3.Cursor,
        account_id: str,
        alias: str,
    ) -> None:
        cur.execute(
            """
            INSERT INTO alias_binding (account_id, alias)
            SELECT ?, ?
            WHERE NOT EXISTS (
                SELECT 1 FROM alias_binding WHERE account_id = ? AND alias = ?
            )
            """,
            (account_id, alias, account_id, alias),
        )

    def register_alias(self, account_id: str, alias: str) -> None:
        try:
            with self._transaction() as conn:
                cur = conn.cursor()
                try:
                    self._insert_account(cur, account_id)
                except sqlite3.Error:
                    logger.error("Failed to insert account %s", account_id)
                    raise
                try:
                    self._insert_alias_binding(cur, account_id, alias)
                except sqlite3.Error:
                    logger.error(
                        "Failed to insert alias binding %s -> %s", alias, account_id
                    )
                    raise
        except sqlite3.Error as exc:
            raise RegistrationWriteError(
                f"Registration of {alias!r} for {account_id} was rolled back"
            ) from exc

    def find_account_id_by_alias(self, alias: str) -> Optional[str]:
        with self._transaction() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT account_id
                FROM alias_binding
                WHERE casefold_alias(alias) = casefold_alias(?)
                ORDER BY account_id
                LIMIT 1
                """,
                (alias,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return str(row[0])

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._transaction() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT account_id FROM account WHERE account_id = ?",
                (account_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return Account(account_id=str(row[0]))

    def get_bindings_for_account(self, account_id: str) -> List[AliasBinding]:
        with self._transaction() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT account_id, alias
                FROM alias_binding
                WHERE account_id = ?
                ORDER BY alias
                """,
                (account_id,),
            )
            rows = cur.fetchall()
            return [
                AliasBinding(account_id=str(row[0]), alias=str(row[1]))
                for row in rows
            ]

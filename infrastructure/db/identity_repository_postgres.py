from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from domain.errors import RegistrationWriteError, StoreUnavailableError
from domain.models import Account, AliasBinding
from domain.repositories import IdentityRepository

logger = logging.getLogger(__name__)

# How long a caller waits for a pooled connection before giving up.
DEFAULT_ACQUIRE_TIMEOUT = 30.0


class PostgresIdentityRepository(IdentityRepository):
    """
    Postgres-backed implementation of `IdentityRepository`.

    Connections come from a `ThreadedConnectionPool` shared by the command
    loop and the webhook loop; the pool is the only state shared between
    them. Every write runs in its own transaction.

    Callers queue on a semaphore sized to the pool, since the pool itself
    raises `PoolError` whenever it is empty.
    """

    def __init__(
        self,
        connection_pool: ThreadedConnectionPool,
        max_connections: int = 1,
        acquire_timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
    ) -> None:
        self._pool = connection_pool
        self._slots = threading.BoundedSemaphore(max_connections)
        self._acquire_timeout = acquire_timeout
        self._ensure_tables()

    @classmethod
    def from_params(
        cls,
        db_params: dict,
        max_connections: int = 1,
    ) -> "PostgresIdentityRepository":
        try:
            connection_pool = ThreadedConnectionPool(1, max_connections, **db_params)
        except psycopg2.Error as exc:
            raise StoreUnavailableError("Failed to create connection pool") from exc
        return cls(connection_pool, max_connections=max_connections)

    def close(self) -> None:
        self._pool.closeall()

    def _ensure_tables(self) -> None:
        """
        Ensure that the `account` and `alias_binding` tables exist.

        Schema (minimal):
          - account(account_id TEXT PRIMARY KEY)
          - alias_binding(account_id TEXT, alias TEXT, UNIQUE(account_id, alias))
        """

        with self._transaction() as conn:
            with conn.cursor() as cur:
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
    def _transaction(self) -> Iterator:
        """
        Borrow a pooled connection for one transaction. The work is committed
        only if the block completes; any exception rolls it back. The
        connection is always returned to the pool.

        Blocks until a connection is free, up to the acquire timeout.
        """

        if not self._slots.acquire(timeout=self._acquire_timeout):
            logger.error("Timed out waiting for a db connection")
            raise StoreUnavailableError("Timed out waiting for a db connection")

        try:
            try:
                conn = self._pool.getconn()
            except psycopg2.Error as exc:
                logger.error("Failed to acquire connection to db")
                raise StoreUnavailableError("Failed to acquire connection to db") from exc

            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                self._pool.putconn(conn)
        finally:
            self._slots.release()

    def register_alias(self, account_id: str, alias: str) -> None:
        try:
            with self._transaction() as conn:
                with conn.cursor() as cur:
                    try:
                        cur.execute(
                            """
                            INSERT INTO account (account_id)
                            SELECT %s
                            WHERE NOT EXISTS (
                                SELECT 1 FROM account WHERE account_id = %s
                            )
                            """,
                            (account_id, account_id),
                        )
                    except psycopg2.Error:
                        logger.error("Failed to insert account %s", account_id)
                        raise
                    try:
                        cur.execute(
                            """
                            INSERT INTO alias_binding (account_id, alias)
                            SELECT %s, %s
                            WHERE NOT EXISTS (
                                SELECT 1 FROM alias_binding
                                WHERE account_id = %s AND alias = %s
                            )
                            """,
                            (account_id, alias, account_id, alias),
                        )
                    except psycopg2.Error:
                        logger.error(
                            "Failed to insert alias binding %s -> %s", alias, account_id
                        )
                        raise
        except psycopg2.Error as exc:
            raise RegistrationWriteError(
                f"Registration of {alias!r} for {account_id} was rolled back"
            ) from exc

    def find_account_id_by_alias(self, alias: str) -> Optional[str]:
        with self._transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT account_id
                    FROM alias_binding
                    WHERE LOWER(alias) = LOWER(%s)
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
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT account_id FROM account WHERE account_id = %s",
                    (account_id,),
                )
                row = cur.fetchone()
                if not row:
                    return None
                return Account(account_id=str(row[0]))

    def get_bindings_for_account(self, account_id: str) -> List[AliasBinding]:
        with self._transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT account_id, alias
                    FROM alias_binding
                    WHERE account_id = %s
                    ORDER BY alias
                    """,
                    (account_id,),
                )
                rows = cur.fetchall()
                return [
                    AliasBinding(account_id=str(row[0]), alias=str(row[1]))
                    for row in rows
                ]

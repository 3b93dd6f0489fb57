"""
DuckDB store for QuickBooks credentials and the internal marketer ledger.

Domain-specific query methods are organized into repository mixins:
- CredentialsMixin: OAuth credentials, one row per location
- MarketersMixin: Monthly marketer ledger (`marketer_monthly`)
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import duckdb

from amy.config import config
from amy.exceptions import QueryTimeoutError
from amy.repositories import CredentialsMixin, MarketersMixin

logger = logging.getLogger(__name__)

DEFAULT_QUERY_TIMEOUT = config.store.query_timeout


class DuckDBStore(CredentialsMixin, MarketersMixin):
    """
    Async-compatible DuckDB store.

    Features:
    - Persistent storage (survives restarts)
    - Thread offloading to avoid blocking asyncio event loop
    - Per-query timeouts
    """

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path) if db_path is not None else config.store.db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = asyncio.Lock()  # Serializes all database access

        # Thread pool for offloading blocking DB operations
        self._executor: Optional[ThreadPoolExecutor] = None

        # Stats for monitoring
        self._total_queries = 0

    async def connect(self) -> None:
        """Initialize database connection, schema, and thread pool."""
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._lock:
            if self._connection is None:
                self._connection = duckdb.connect(str(self.db_path))
                await self._init_schema()

                self._executor = ThreadPoolExecutor(
                    max_workers=1,  # DuckDB requires serialized access
                    thread_name_prefix="duckdb"
                )

                logger.info(f"DuckDB connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection and thread pool."""
        async with self._lock:
            if self._executor:
                self._executor.shutdown(wait=True)
                self._executor = None

            if self._connection:
                self._connection.close()
                self._connection = None
                logger.info("DuckDB connection closed")

    def get_connection_info(self) -> Dict[str, Any]:
        """Get connection info for monitoring."""
        return {
            "status": "active" if self._connection else "not_initialized",
            "total_queries": self._total_queries,
            "db_path": str(self.db_path),
        }

    async def ping(self) -> bool:
        """Round trip a trivial query."""
        return await self._fetch_one("SELECT 1") is not None

    @asynccontextmanager
    async def connection(self):
        """Get database connection, connecting on first use.

        Acquires lock to ensure single-threaded DuckDB access.
        """
        if self._connection is None:
            await self.connect()
        async with self._lock:
            yield self._connection

    # ─── Query Execution with Timeout ────────────────────────────────────────

    async def _run_in_executor(self, func, query: str, timeout: float, what: str):
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, func),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            raise QueryTimeoutError(query, timeout, what)

    async def _execute_with_timeout(
        self,
        query: str,
        params: list = None,
        timeout: float = DEFAULT_QUERY_TIMEOUT,
    ) -> None:
        """
        Execute a query with timeout (for INSERT/UPDATE/DELETE).

        Raises:
            QueryTimeoutError: If query exceeds timeout
        """
        async with self.connection() as conn:
            self._total_queries += 1

            def _run():
                conn.execute(query, params or [])

            await self._run_in_executor(_run, query, timeout, "Execute failed")

    async def _execute_many(
        self,
        query: str,
        rows: List[list],
        timeout: float = DEFAULT_QUERY_TIMEOUT,
    ) -> None:
        """Execute a statement once per parameter row inside one transaction."""
        async with self.connection() as conn:
            self._total_queries += 1

            def _run():
                conn.execute("BEGIN TRANSACTION")
                try:
                    for params in rows:
                        conn.execute(query, params)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

            await self._run_in_executor(_run, query, timeout, "Batch execute failed")

    async def _fetch_one(
        self,
        query: str,
        params: list = None,
        timeout: float = DEFAULT_QUERY_TIMEOUT,
    ) -> Optional[tuple]:
        """
        Execute query and fetch one result with timeout.

        Returns:
            Single row tuple or None

        Raises:
            QueryTimeoutError: If query exceeds timeout
        """
        async with self.connection() as conn:
            self._total_queries += 1

            def _run():
                return conn.execute(query, params or []).fetchone()

            return await self._run_in_executor(_run, query, timeout, "Fetch one failed")

    async def _fetch_all(
        self,
        query: str,
        params: list = None,
        timeout: float = DEFAULT_QUERY_TIMEOUT,
    ) -> List[tuple]:
        """
        Execute query and fetch all results with timeout.

        Returns:
            List of row tuples

        Raises:
            QueryTimeoutError: If query exceeds timeout
        """
        async with self.connection() as conn:
            self._total_queries += 1

            def _run():
                return conn.execute(query, params or []).fetchall()

            return await self._run_in_executor(_run, query, timeout, "Fetch all failed")

    async def _init_schema(self) -> None:
        """Create database schema if not exists."""
        schema_sql = """
        -- OAuth credentials, one row per location
        CREATE TABLE IF NOT EXISTS quickbooks_tokens (
            location VARCHAR PRIMARY KEY,
            access_token VARCHAR NOT NULL,
            refresh_token VARCHAR NOT NULL,
            expires_at TIMESTAMP NOT NULL,  -- UTC
            realm_id VARCHAR,
            company_name VARCHAR,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        -- Internal ledger, pre-aggregated per marketer, patient state and month
        CREATE TABLE IF NOT EXISTS marketer_monthly (
            location VARCHAR NOT NULL,
            marketer_name VARCHAR NOT NULL,
            patient_state VARCHAR NOT NULL,
            year INTEGER NOT NULL,
            month INTEGER NOT NULL,
            transaction_count INTEGER DEFAULT 0,
            acquisition_cost DECIMAL(12, 2) DEFAULT 0,
            shipping_charged_to_pt DECIMAL(12, 2) DEFAULT 0,
            shipping_cost_actual DECIMAL(12, 2) DEFAULT 0,
            total_pt_paid DECIMAL(12, 2) DEFAULT 0,
            profit_after_product DECIMAL(12, 2) DEFAULT 0,
            net_profit DECIMAL(12, 2) DEFAULT 0,
            PRIMARY KEY (location, marketer_name, patient_state, year, month)
        );
        """
        self._connection.execute(schema_sql)
        logger.debug("DuckDB schema initialized")


_store_instance: Optional[DuckDBStore] = None
_store_lock = asyncio.Lock()


async def get_store() -> DuckDBStore:
    """Get singleton DuckDB store instance (coroutine-safe)."""
    global _store_instance
    async with _store_lock:
        if _store_instance is None:
            _store_instance = DuckDBStore()
            await _store_instance.connect()
    return _store_instance


async def close_store() -> None:
    """Close singleton store instance."""
    global _store_instance
    if _store_instance:
        await _store_instance.close()
        _store_instance = None

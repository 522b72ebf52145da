import logging
from pathlib import Path
from typing import TypeVar, cast

import aiosqlite
from aiosqlitepool import SQLiteConnectionPool
from aiosqlitepool.protocols import Connection as SQLitePoolConnection

from moodjournal.settings import settings
from moodjournal.util import resolve_data_path

from moodjournal.app.db.base import run_in_transaction
from moodjournal.app.db.credentials import CredentialsRepository
from moodjournal.app.db.entries import EntriesRepository
from moodjournal.app.db.monthly import MonthlyCacheRepository
from moodjournal.app.db.outbox import OutboxRepository
from moodjournal.app.db.response_cache import ResponseCacheRepository


RepositoryT = TypeVar("RepositoryT")


SCHEMA_PATH = resolve_data_path(
    "schema.sql",
    fallback_dir=Path(__file__).resolve().parent,
)


class LocalDB:
    """Facade around the offline SQLite repositories with shared connection pooling."""

    def __init__(self, db_path: str | Path | None = None):
        raw_path = Path(db_path or settings.DATABASE.path)
        self.db_path = raw_path.expanduser().resolve(strict=False)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.pool: SQLiteConnectionPool | None = None
        self._entries: EntriesRepository | None = None
        self._monthly: MonthlyCacheRepository | None = None
        self._outbox: OutboxRepository | None = None
        self._responses: ResponseCacheRepository | None = None
        self._credentials: CredentialsRepository | None = None

    async def __aenter__(self) -> "LocalDB":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self.pool is not None

    async def init(self) -> None:
        if self.pool is not None:
            return

        is_new = not self.db_path.exists()
        acquisition_timeout = int(settings.DATABASE.pool_acquire_timeout)

        async def _connection_factory() -> SQLitePoolConnection:
            return cast(SQLitePoolConnection, await self._create_connection())

        pool = SQLiteConnectionPool(
            _connection_factory,
            pool_size=int(settings.DATABASE.pool_size),
            acquisition_timeout=acquisition_timeout,
        )
        self.pool = pool
        try:
            await self._ensure_schema(is_new)
            self._configure_repositories()
        except Exception:
            await pool.close()
            self.pool = None
            self._reset_repositories()
            raise

    async def close(self) -> None:
        if self.pool is not None:
            try:
                await self.pool.close()
            finally:
                self.pool = None
        self._reset_repositories()

    def _reset_repositories(self) -> None:
        self._entries = None
        self._monthly = None
        self._outbox = None
        self._responses = None
        self._credentials = None

    async def _create_connection(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self.db_path, timeout=float(settings.DATABASE.timeout)
        )
        await conn.execute(
            f"PRAGMA busy_timeout = {int(settings.DATABASE.busy_timeout)}"
        )
        await conn.execute("PRAGMA journal_mode = WAL")
        await conn.execute("PRAGMA synchronous = NORMAL")
        await conn.execute("PRAGMA temp_store = MEMORY")
        conn.row_factory = aiosqlite.Row
        return conn

    async def _ensure_schema(self, is_new: bool) -> None:
        if is_new:
            logging.getLogger(__name__).info(
                "Creating new offline store at %s", self.db_path
            )
        if not self.pool:
            raise RuntimeError("Connection pool not initialized")
        schema_sql = SCHEMA_PATH.read_text()
        async with self.pool.connection() as conn:
            await run_in_transaction(
                conn,
                conn.executescript,
                schema_sql,
            )

    def _configure_repositories(self) -> None:
        if not self.pool:
            raise RuntimeError("Connection pool not initialized")
        self._entries = EntriesRepository(self.pool)
        self._monthly = MonthlyCacheRepository(self.pool)
        self._outbox = OutboxRepository(self.pool)
        self._responses = ResponseCacheRepository(self.pool)
        self._credentials = CredentialsRepository(self.pool)

    def _require_repository(
        self, repository: RepositoryT | None, name: str
    ) -> RepositoryT:
        if repository is None:
            raise RuntimeError(
                f"{name} repository is not initialised; call init() before accessing it."
            )
        return repository

    @property
    def entries(self) -> EntriesRepository:
        """Return the entries repository.

        Raises a :class:`RuntimeError` when accessed before the database has been
        initialised so configuration errors are caught early.
        """

        return self._require_repository(self._entries, "Entries")

    @property
    def monthly(self) -> MonthlyCacheRepository:
        """Return the monthly list cache repository."""

        return self._require_repository(self._monthly, "Monthly cache")

    @property
    def outbox(self) -> OutboxRepository:
        """Return the pending-write outbox repository."""

        return self._require_repository(self._outbox, "Outbox")

    @property
    def responses(self) -> ResponseCacheRepository:
        """Return the GET response cache repository."""

        return self._require_repository(self._responses, "Response cache")

    @property
    def credentials(self) -> CredentialsRepository:
        """Return the stored session credentials repository."""

        return self._require_repository(self._credentials, "Credentials")

"""
KV Cache — SQLite Cache Backend

Durable cache stored in an SQLite file through SQLAlchemy's asyncio engine
(aiosqlite driver).

Features:
- Lazy, memoized schema setup: the first operation starts one initialization
  task and every concurrent caller awaits that same task
- Schema versioning through PRAGMA user_version
- Separate tables for scalar entries and hash fields
- Values stored with the structured codec, so datetimes, sets and nested
  containers survive a round-trip
- Lazy expiration: expired rows read as absent and are deleted on the read
  that finds them

Example:
    cache = SQLiteCacheBackend(db_path="./data/cache.db")
    await cache.set("greeting", {"msg": "hello"}, ttl=60)
    val = await cache.get("greeting")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import ColumnElement, and_, delete, func, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ...errors import CacheError, CacheOperationError
from .. import serialization
from ..expiry import CacheEntry, compute_expires_at, is_expired
from ..interface import CacheInterface, require_key
from .sqlite_schema import SCHEMA_VERSION, build_schema

logger = logging.getLogger(__name__)


class SQLiteCacheBackend(CacheInterface):
    """
    SQLite cache backend with per-operation transactions.

    Notes:
    - Every operation opens its own short-lived transaction; nothing is shared
      across calls and multi-key deletes are not all-or-nothing beyond what
      SQLite itself provides.
    - Hash fields never expire.
    - Storage failures raise CacheOperationError instead of reading as a miss.
    """

    backend_name = "sqlite"

    def __init__(
        self,
        db_path: str = "./data/cache.db",
        table_name: str = "kv_entries",
        hash_table_name: str = "kv_hash_entries",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize SQLite cache backend.

        Nothing touches the disk until the first operation.

        Args:
            db_path: Path to SQLite database file (relative or absolute)
            table_name: Table holding scalar entries
            hash_table_name: Table holding hash fields
            clock: Time source in seconds
        """
        self.db_path = Path(db_path).resolve()
        self.db_url = f"sqlite+aiosqlite:///{self.db_path}"
        self._schema = build_schema(table_name, hash_table_name)
        self._clock = clock

        self._engine: AsyncEngine | None = None
        self._init_task: asyncio.Future[AsyncEngine] | None = None

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0

    # ------------ Initialization ------------

    async def _initialize(self) -> AsyncEngine:
        """Open the database and bring its schema to SCHEMA_VERSION."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_async_engine(
            self.db_url,
            echo=False,
            connect_args={"check_same_thread": False},
        )

        try:
            async with engine.begin() as conn:
                version = (await conn.exec_driver_sql("PRAGMA user_version")).scalar_one()
                if version > SCHEMA_VERSION:
                    raise CacheOperationError(
                        f"Cache database schema version {version} is newer than supported version {SCHEMA_VERSION}",
                        details={"db_path": str(self.db_path), "version": version},
                    )

                await conn.run_sync(self._schema.metadata.create_all)
                if version < SCHEMA_VERSION:
                    await conn.exec_driver_sql(f"PRAGMA user_version = {SCHEMA_VERSION}")
        except BaseException:
            await engine.dispose()
            raise

        logger.info(
            f"Initialized SQLite cache at {self.db_path}",
            extra={"db_path": str(self.db_path), "schema_version": SCHEMA_VERSION},
        )
        return engine

    async def _ensure_initialized(self) -> AsyncEngine:
        """
        Wait for the one shared initialization task, starting it if needed.

        The task is shielded so a cancelled caller does not abort setup for
        everyone else. A failed setup is forgotten so the next call retries.
        """
        if self._engine is not None:
            return self._engine

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())

        task = self._init_task
        try:
            engine = await asyncio.shield(task)
        except (SQLAlchemyError, OSError) as e:
            if self._init_task is task:
                self._init_task = None
            logger.error(
                f"Failed to initialize SQLite cache at {self.db_path}: {e}",
                extra={"db_path": str(self.db_path), "error": str(e)},
                exc_info=True,
            )
            raise CacheOperationError(
                f"Failed to initialize SQLite cache: {e}",
                details={"db_path": str(self.db_path), "error": str(e)},
            ) from e

        if self._init_task is not task:
            # close() ran while setup was in flight and disposed this engine
            return await self._ensure_initialized()

        self._engine = engine
        return engine

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise CacheError(
                "SQLite cache used before initialization",
                details={"db_path": str(self.db_path)},
            )
        return self._engine

    @asynccontextmanager
    async def _transaction(self, write: bool = False) -> AsyncIterator[AsyncConnection]:
        """Open a read (connect) or read-write (begin) transaction."""
        engine = self._require_engine()
        try:
            if write:
                async with engine.begin() as conn:
                    yield conn
            else:
                async with engine.connect() as conn:
                    yield conn
        except SQLAlchemyError as e:
            logger.error(
                f"SQLite cache operation failed: {e}",
                extra={"db_path": str(self.db_path), "write": write, "error": str(e)},
                exc_info=True,
            )
            raise CacheOperationError(
                f"SQLite cache operation failed: {e}",
                details={"db_path": str(self.db_path), "error": str(e)},
            ) from e

    # ------------ Helpers ------------

    def _live(self, now: float) -> ColumnElement[bool]:
        """SQL twin of `not is_expired(expires_at, now)`."""
        expires_at = self._schema.entries.c.expires_at
        return or_(expires_at.is_(None), expires_at <= 0, expires_at >= now)

    def _expired(self, now: float) -> ColumnElement[bool]:
        expires_at = self._schema.entries.c.expires_at
        return and_(expires_at > 0, expires_at < now)

    async def _load_entry(self, key: str) -> CacheEntry | None:
        """Read a scalar entry, deleting it instead if it has expired."""
        require_key(key)
        await self._ensure_initialized()
        table = self._schema.entries

        async with self._transaction() as conn:
            result = await conn.execute(select(table.c.value, table.c.expires_at).where(table.c.key == key))
            row = result.first()

        if row is None:
            return None

        if is_expired(row.expires_at, self._clock()):
            async with self._transaction(write=True) as conn:
                # Match expires_at too so a concurrent overwrite survives
                await conn.execute(delete(table).where(table.c.key == key, table.c.expires_at == row.expires_at))
            logger.debug(f"Reclaimed expired key from SQLite cache: {key}")
            return None

        return CacheEntry(row.value, row.expires_at)

    # ------------ Core Interface ------------

    async def has(self, key: str) -> bool:
        return await self._load_entry(key) is not None

    async def get(self, key: str) -> Any | None:
        entry = await self._load_entry(key)
        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        return serialization.loads(entry.value)  # type: ignore[arg-type]

    async def get_object(self, key: str) -> Any | None:
        # Every value is stored with the structured codec already
        return await self.get(key)

    async def hash_get(self, key: str, field: str) -> Any | None:
        require_key(key)
        require_key(field, "field")
        await self._ensure_initialized()
        table = self._schema.hash_entries

        async with self._transaction() as conn:
            result = await conn.execute(select(table.c.value).where(table.c.key == key, table.c.field == field))
            value = result.scalar_one_or_none()

        if value is None:
            self._misses += 1
        else:
            self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: int = 0) -> None:
        require_key(key)
        payload = serialization.dumps(value)
        await self._ensure_initialized()
        table = self._schema.entries

        expires_at = compute_expires_at(ttl, self._clock())
        stmt = sqlite_insert(table).values(key=key, value=payload, expires_at=expires_at)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.key],
            set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
        )

        async with self._transaction(write=True) as conn:
            await conn.execute(stmt)
        self._sets += 1

    async def set_object(self, key: str, value: Any, ttl: int = 0) -> None:
        await self.set(key, value, ttl)

    async def hash_set(self, key: str, field: str, value: Any | None) -> None:
        require_key(key)
        require_key(field, "field")
        await self._ensure_initialized()
        table = self._schema.hash_entries

        if value is None:
            stmt = delete(table).where(table.c.key == key, table.c.field == field)
        else:
            insert_stmt = sqlite_insert(table).values(key=key, field=field, value=value)
            stmt = insert_stmt.on_conflict_do_update(
                index_elements=[table.c.key, table.c.field],
                set_={"value": insert_stmt.excluded.value},
            )

        async with self._transaction(write=True) as conn:
            await conn.execute(stmt)

    async def hash_delete_fields(self, key: str, *fields: str) -> None:
        require_key(key)
        if not fields:
            return
        await self._ensure_initialized()
        table = self._schema.hash_entries

        async with self._transaction(write=True) as conn:
            await conn.execute(delete(table).where(table.c.key == key, table.c.field.in_(fields)))

    async def delete(self, *keys: str) -> int:
        """
        Delete scalar keys in one transaction, one DELETE per key.

        Only live entries count as removed; expired rows among the keys are
        reclaimed without being counted.
        """
        if not keys:
            return 0

        await self._ensure_initialized()
        table = self._schema.entries
        now = self._clock()
        deleted = 0

        async with self._transaction(write=True) as conn:
            for key in keys:
                result = await conn.execute(delete(table).where(table.c.key == key, self._live(now)))
                deleted += result.rowcount
            await conn.execute(delete(table).where(table.c.key.in_(keys), self._expired(now)))

        self._deletes += deleted
        return deleted

    async def keys(self, pattern: str | None = None) -> list[str]:
        await self._ensure_initialized()
        table = self._schema.entries

        stmt = select(table.c.key).where(self._live(self._clock())).order_by(table.c.key)
        if pattern is not None:
            stmt = stmt.where(table.c.key.op("GLOB")(pattern))

        async with self._transaction() as conn:
            result = await conn.execute(stmt)
            return list(result.scalars().all())

    async def size(self, pattern: str | None = None) -> int:
        await self._ensure_initialized()
        table = self._schema.entries

        stmt = select(func.count()).select_from(table).where(self._live(self._clock()))
        if pattern is not None:
            stmt = stmt.where(table.c.key.op("GLOB")(pattern))

        async with self._transaction() as conn:
            result = await conn.execute(stmt)
            return int(result.scalar_one())

    async def get_stats(self) -> dict[str, Any]:
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

        return {
            "backend": self.backend_name,
            "db_path": str(self.db_path),
            "schema_version": SCHEMA_VERSION,
            "size": await self.size(),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 2),
            "sets": self._sets,
            "deletes": self._deletes,
        }

    async def close(self) -> None:
        """Dispose of the engine; the next operation reopens the database."""
        engine = self._engine
        task = self._init_task
        self._engine = None
        self._init_task = None

        if engine is None and task is not None:
            try:
                engine = await task
            except (SQLAlchemyError, OSError, CacheError) as e:
                # _initialize disposes its own engine on failure
                logger.debug(f"Pending SQLite initialization failed during close: {e}")

        if engine is not None:
            await engine.dispose()
            logger.info(f"Closed SQLite cache backend at {self.db_path}")

"""
Ordered Key-Value Infrastructure
================================

Ordered key-value substrate that ticket records and their secondary
indexes are written to.

Keys are text and order by their UTF-8 bytes; values are opaque bytes.
Two implementations:
- InMemoryKeyValueStore: sorted list + dict, for tests and ephemeral runs
- SQLAlchemyKeyValueStore: one BLOB-keyed table behind SQLAlchemy 2.0 async
"""

import bisect
from abc import ABC, abstractmethod
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy import LargeBinary, delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from multisig_triage.core import ConfigurationException
from multisig_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MEMORY_URL = "memory://"


class OrderedKeyValueStore(ABC):
    """
    Interface for an ordered key-value substrate.

    Range scans yield (key, value) pairs in ascending key order.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Get the value stored under key, or None."""

    @abstractmethod
    async def put(self, key: str, value: bytes) -> None:
        """Insert or overwrite key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key (no-op when absent)."""

    @abstractmethod
    def scan(
        self,
        lower: Optional[str] = None,
        upper: Optional[str] = None,
        include_lower: bool = True,
        include_upper: bool = False
    ) -> AsyncIterator[Tuple[str, bytes]]:
        """Iterate entries between lower and upper in key order."""

    async def initialize(self) -> None:
        """Prepare the substrate for use."""

    async def close(self) -> None:
        """Release held resources."""


def _encode(key: str) -> bytes:
    return key.encode("utf-8")


class InMemoryKeyValueStore(OrderedKeyValueStore):
    """
    Process-local ordered store.

    Scans iterate over a snapshot, so callers may write while scanning.
    """

    def __init__(self):
        self._keys: List[bytes] = []
        self._data: Dict[bytes, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(_encode(key))

    async def put(self, key: str, value: bytes) -> None:
        raw = _encode(key)
        if raw not in self._data:
            bisect.insort(self._keys, raw)
        self._data[raw] = bytes(value)

    async def delete(self, key: str) -> None:
        raw = _encode(key)
        if self._data.pop(raw, None) is not None:
            index = bisect.bisect_left(self._keys, raw)
            del self._keys[index]

    async def scan(
        self,
        lower: Optional[str] = None,
        upper: Optional[str] = None,
        include_lower: bool = True,
        include_upper: bool = False
    ) -> AsyncIterator[Tuple[str, bytes]]:
        if lower is None:
            start = 0
        elif include_lower:
            start = bisect.bisect_left(self._keys, _encode(lower))
        else:
            start = bisect.bisect_right(self._keys, _encode(lower))

        if upper is None:
            end = len(self._keys)
        elif include_upper:
            end = bisect.bisect_right(self._keys, _encode(upper))
        else:
            end = bisect.bisect_left(self._keys, _encode(upper))

        snapshot = [(raw, self._data[raw]) for raw in self._keys[start:end]]
        for raw, value in snapshot:
            yield raw.decode("utf-8"), value

    def __len__(self) -> int:
        return len(self._keys)


class Base(DeclarativeBase):
    """Declarative base for key-value tables."""


class KeyValueEntry(Base):
    """One row per key; BLOB keys keep byte ordering on every backend."""

    __tablename__ = "kv_entries"

    key: Mapped[bytes] = mapped_column(LargeBinary, primary_key=True)
    value: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)


class SQLAlchemyKeyValueStore(OrderedKeyValueStore):
    """
    Ordered store backed by a single SQL table.

    Uses SQLAlchemy 2.0 async sessions; sqlite+aiosqlite by default.
    """

    def __init__(self, url: str, echo: bool = False):
        self._url = url
        self._engine: AsyncEngine = create_async_engine(url, echo=echo)
        self._session_maker = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def initialize(self) -> None:
        """Create the backing table (idempotent)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Key-value table ready", extra={"storage_url": self._safe_url()})

    async def close(self) -> None:
        await self._engine.dispose()

    async def get(self, key: str) -> Optional[bytes]:
        async with self._session_maker() as session:
            entry = await session.get(KeyValueEntry, _encode(key))
            return entry.value if entry is not None else None

    async def put(self, key: str, value: bytes) -> None:
        async with self._session_maker() as session:
            async with session.begin():
                await session.merge(KeyValueEntry(key=_encode(key), value=bytes(value)))

    async def delete(self, key: str) -> None:
        async with self._session_maker() as session:
            async with session.begin():
                await session.execute(
                    delete(KeyValueEntry).where(KeyValueEntry.key == _encode(key))
                )

    async def scan(
        self,
        lower: Optional[str] = None,
        upper: Optional[str] = None,
        include_lower: bool = True,
        include_upper: bool = False
    ) -> AsyncIterator[Tuple[str, bytes]]:
        stmt = select(KeyValueEntry.key, KeyValueEntry.value)
        if lower is not None:
            bound = _encode(lower)
            stmt = stmt.where(KeyValueEntry.key >= bound if include_lower else KeyValueEntry.key > bound)
        if upper is not None:
            bound = _encode(upper)
            stmt = stmt.where(KeyValueEntry.key <= bound if include_upper else KeyValueEntry.key < bound)
        stmt = stmt.order_by(KeyValueEntry.key)

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            rows = result.all()

        for raw, value in rows:
            yield raw.decode("utf-8"), value

    def _safe_url(self) -> str:
        return make_url(self._url).render_as_string(hide_password=True)


def create_key_value_store(storage_url: str, echo: bool = False) -> OrderedKeyValueStore:
    """
    Build the key-value store selected by storage_url.

    Args:
        storage_url: ``memory://`` or an async SQLAlchemy URL
        echo: Echo SQL statements (debug)

    Raises:
        ConfigurationException: If the URL cannot be used
    """
    if storage_url == MEMORY_URL:
        return InMemoryKeyValueStore()

    try:
        url = make_url(storage_url)
    except Exception as e:
        raise ConfigurationException(f"Invalid storage URL: {e}") from e

    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    return SQLAlchemyKeyValueStore(storage_url, echo=echo)


__all__ = [
    "OrderedKeyValueStore",
    "InMemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
    "KeyValueEntry",
    "create_key_value_store",
    "MEMORY_URL",
]

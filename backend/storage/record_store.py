# storage/record_store.py
# ============================================================================
# SALEOR ORDER HASH APP — RECORD STORE
# ============================================================================
# Durable order_id -> order_hash mappings.
#
# The uniqueness constraints on order_id and order_hash are the only
# concurrency-correctness mechanism: exists_by_hash() is advisory, insert()
# is authoritative. Callers never hold locks across these calls.
# ============================================================================

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

import asyncpg
import structlog

from database import Database, rows_affected
from errors import DuplicateOrderId, DuplicateToken, RecordNotFound, StoreUnavailable
from schemas.order_hash import OrderHashRecord

logger = structlog.get_logger().bind(component="record_store")

MAX_LIST_LIMIT = 100


def clamp_limit(limit: int) -> int:
    return max(1, min(int(limit), MAX_LIST_LIMIT))


# =============================================================================
# INTERFACE
# =============================================================================

class IRecordStore(ABC):
    """Order hash storage interface"""

    @abstractmethod
    async def ensure_schema(self) -> None:
        """Create or additively migrate the storage structure. Idempotent."""
        pass

    @abstractmethod
    async def exists_by_hash(self, order_hash: str) -> bool:
        pass

    @abstractmethod
    async def insert(self, order_id: str, order_hash: str, saleor_api_url: str) -> OrderHashRecord:
        """Raises DuplicateOrderId or DuplicateToken on constraint violation."""
        pass

    @abstractmethod
    async def find_by_hash(self, order_hash: str) -> OrderHashRecord:
        """Raises RecordNotFound."""
        pass

    @abstractmethod
    async def find_by_order_id(self, order_id: str) -> Optional[OrderHashRecord]:
        pass

    @abstractmethod
    async def list_recent(self, limit: int = 20) -> List[OrderHashRecord]:
        pass

    @abstractmethod
    async def find_duplicate_hashes(self) -> Dict[str, int]:
        pass

    @abstractmethod
    async def find_duplicate_order_ids(self) -> Dict[str, int]:
        pass

    @abstractmethod
    async def delete_duplicates(self) -> int:
        """Keep the earliest row per duplicated hash, delete the rest."""
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def ping(self) -> None:
        pass


# =============================================================================
# POSTGRES IMPLEMENTATION
# =============================================================================

_RECORD_COLUMNS = "id, order_id, order_hash, saleor_api_url, created_at"


def _to_record(row: asyncpg.Record) -> OrderHashRecord:
    return OrderHashRecord(**dict(row))


class PostgresRecordStore(IRecordStore):
    """asyncpg-backed store; the table is created by Database migrations"""

    def __init__(self, database: Database):
        self.db = database

    async def ensure_schema(self) -> None:
        await self.db.run_migrations()

    async def exists_by_hash(self, order_hash: str) -> bool:
        return bool(await self.db.fetch_value(
            "SELECT EXISTS(SELECT 1 FROM order_hashes WHERE order_hash = $1)",
            order_hash,
        ))

    async def insert(self, order_id: str, order_hash: str, saleor_api_url: str) -> OrderHashRecord:
        try:
            row = await self.db.fetch_one(
                f"""
                INSERT INTO order_hashes (order_id, order_hash, saleor_api_url)
                VALUES ($1, $2, $3)
                RETURNING {_RECORD_COLUMNS}
                """,
                order_id,
                order_hash,
                saleor_api_url,
            )
        except asyncpg.UniqueViolationError as e:
            # Constraint names are <table>_<column>_key by default
            constraint = (e.constraint_name or "") + " " + (e.detail or "")
            if "order_id" in constraint:
                raise DuplicateOrderId(order_id) from e
            raise DuplicateToken(order_hash) from e

        return _to_record(row)

    async def find_by_hash(self, order_hash: str) -> OrderHashRecord:
        row = await self.db.fetch_one(
            f"SELECT {_RECORD_COLUMNS} FROM order_hashes WHERE order_hash = $1 ORDER BY id LIMIT 1",
            order_hash,
        )
        if row is None:
            raise RecordNotFound("No order found for this hash")
        return _to_record(row)

    async def find_by_order_id(self, order_id: str) -> Optional[OrderHashRecord]:
        row = await self.db.fetch_one(
            f"SELECT {_RECORD_COLUMNS} FROM order_hashes WHERE order_id = $1 ORDER BY id LIMIT 1",
            order_id,
        )
        return _to_record(row) if row else None

    async def list_recent(self, limit: int = 20) -> List[OrderHashRecord]:
        rows = await self.db.fetch_all(
            f"SELECT {_RECORD_COLUMNS} FROM order_hashes ORDER BY created_at DESC, id DESC LIMIT $1",
            clamp_limit(limit),
        )
        return [_to_record(row) for row in rows]

    async def find_duplicate_hashes(self) -> Dict[str, int]:
        rows = await self.db.fetch_all(
            """
            SELECT order_hash AS key, COUNT(*) AS count
            FROM order_hashes
            GROUP BY order_hash
            HAVING COUNT(*) > 1
            """
        )
        return {row["key"]: row["count"] for row in rows}

    async def find_duplicate_order_ids(self) -> Dict[str, int]:
        rows = await self.db.fetch_all(
            """
            SELECT order_id AS key, COUNT(*) AS count
            FROM order_hashes
            GROUP BY order_id
            HAVING COUNT(*) > 1
            """
        )
        return {row["key"]: row["count"] for row in rows}

    async def delete_duplicates(self) -> int:
        status = await self.db.execute(
            """
            DELETE FROM order_hashes a
            USING order_hashes b
            WHERE a.order_hash = b.order_hash
              AND a.id > b.id
            """
        )
        removed = rows_affected(status)
        logger.info("duplicates_deleted", rows_removed=removed)
        return removed

    async def count(self) -> int:
        return int(await self.db.fetch_value("SELECT COUNT(*) FROM order_hashes") or 0)

    async def ping(self) -> None:
        await self.db.fetch_value("SELECT 1")


# =============================================================================
# IN-MEMORY IMPLEMENTATION
# =============================================================================

class InMemoryRecordStore(IRecordStore):
    """
    In-memory store (asyncio-safe) with the same constraint semantics.

    With enforce_constraints=False it behaves like a legacy table created
    without UNIQUE constraints, so duplicate rows can exist.
    """

    def __init__(self, enforce_constraints: bool = True, available: bool = True):
        self.enforce_constraints = enforce_constraints
        self.available = available
        self._rows: List[OrderHashRecord] = []
        self._next_id = 1
        self._schema_ready = False
        self._lock = asyncio.Lock()

    def _check_available(self):
        if not self.available:
            raise StoreUnavailable("In-memory store marked unavailable")

    async def ensure_schema(self) -> None:
        self._check_available()
        self._schema_ready = True

    async def exists_by_hash(self, order_hash: str) -> bool:
        self._check_available()
        async with self._lock:
            return any(r.order_hash == order_hash for r in self._rows)

    async def insert(self, order_id: str, order_hash: str, saleor_api_url: str) -> OrderHashRecord:
        self._check_available()
        async with self._lock:
            if self.enforce_constraints:
                if any(r.order_id == order_id for r in self._rows):
                    raise DuplicateOrderId(order_id)
                if any(r.order_hash == order_hash for r in self._rows):
                    raise DuplicateToken(order_hash)
            record = OrderHashRecord(
                id=self._next_id,
                order_id=order_id,
                order_hash=order_hash,
                saleor_api_url=saleor_api_url,
                created_at=datetime.now(timezone.utc),
            )
            self._next_id += 1
            self._rows.append(record)
            return record

    async def find_by_hash(self, order_hash: str) -> OrderHashRecord:
        self._check_available()
        async with self._lock:
            for record in self._rows:
                if record.order_hash == order_hash:
                    return record
        raise RecordNotFound("No order found for this hash")

    async def find_by_order_id(self, order_id: str) -> Optional[OrderHashRecord]:
        self._check_available()
        async with self._lock:
            for record in self._rows:
                if record.order_id == order_id:
                    return record
            return None

    async def list_recent(self, limit: int = 20) -> List[OrderHashRecord]:
        self._check_available()
        async with self._lock:
            ordered = sorted(self._rows, key=lambda r: (r.created_at, r.id), reverse=True)
            return ordered[:clamp_limit(limit)]

    async def _group_counts(self, attr: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        async with self._lock:
            for record in self._rows:
                key = getattr(record, attr)
                counts[key] = counts.get(key, 0) + 1
        return {k: v for k, v in counts.items() if v > 1}

    async def find_duplicate_hashes(self) -> Dict[str, int]:
        self._check_available()
        return await self._group_counts("order_hash")

    async def find_duplicate_order_ids(self) -> Dict[str, int]:
        self._check_available()
        return await self._group_counts("order_id")

    async def delete_duplicates(self) -> int:
        self._check_available()
        async with self._lock:
            keep: Dict[str, OrderHashRecord] = {}
            for record in sorted(self._rows, key=lambda r: r.id):
                keep.setdefault(record.order_hash, record)
            removed = len(self._rows) - len(keep)
            self._rows = sorted(keep.values(), key=lambda r: r.id)
            return removed

    async def count(self) -> int:
        self._check_available()
        async with self._lock:
            return len(self._rows)

    async def ping(self) -> None:
        self._check_available()

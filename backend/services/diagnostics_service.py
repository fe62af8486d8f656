# services/diagnostics_service.py
# ============================================================================
# SALEOR ORDER HASH APP — DIAGNOSTICS
# ============================================================================
# Admin read/repair operations over the record store. The cleanup is the
# after-the-fact safety net for the exists/insert race in issuance.
# ============================================================================

import time
from typing import Dict, List

import structlog

from schemas.order_hash import ConnectivityReport, DuplicateReport, OrderHashRecord
from storage.record_store import IRecordStore, clamp_limit

logger = structlog.get_logger().bind(component="diagnostics")


class DiagnosticsService:
    """Pass-throughs to the store; errors propagate to the caller."""

    def __init__(self, store: IRecordStore):
        self.store = store

    async def init_schema(self) -> None:
        await self.store.ensure_schema()
        logger.info("schema_initialized")

    async def test_store_connectivity(self) -> ConnectivityReport:
        started = time.perf_counter()
        await self.store.ping()
        total = await self.store.count()
        return ConnectivityReport(
            ok=True,
            latency_ms=round((time.perf_counter() - started) * 1000, 2),
            total_records=total,
        )

    async def list_recent(self, limit: int = 20) -> List[OrderHashRecord]:
        return await self.store.list_recent(clamp_limit(limit))

    async def total_count(self) -> int:
        return await self.store.count()

    async def find_duplicate_hashes(self) -> Dict[str, int]:
        return await self.store.find_duplicate_hashes()

    async def find_duplicate_order_ids(self) -> Dict[str, int]:
        return await self.store.find_duplicate_order_ids()

    async def duplicate_report(self) -> DuplicateReport:
        report = DuplicateReport(
            duplicate_hashes=await self.store.find_duplicate_hashes(),
            duplicate_order_ids=await self.store.find_duplicate_order_ids(),
            total_records=await self.store.count(),
        )
        if report.has_duplicates:
            logger.warning("duplicates_found",
                           duplicate_hashes=len(report.duplicate_hashes),
                           duplicate_order_ids=len(report.duplicate_order_ids))
        return report

    async def cleanup_duplicates(self) -> int:
        removed = await self.store.delete_duplicates()
        logger.info("duplicate_cleanup_complete", rows_removed=removed)
        return removed

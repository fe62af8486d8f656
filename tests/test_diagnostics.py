"""Tests for the admin diagnostics service."""

import pytest

from errors import StoreUnavailable
from services.diagnostics_service import DiagnosticsService
from storage.record_store import InMemoryRecordStore

from tests.helpers import SALEOR_API_URL


class TestDiagnosticsService:

    @pytest.mark.asyncio
    async def test_connectivity_report(self, store):
        await store.insert("O1", "hash-1", SALEOR_API_URL)

        report = await DiagnosticsService(store).test_store_connectivity()

        assert report.ok is True
        assert report.total_records == 1
        assert report.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_connectivity_failure_propagates(self):
        with pytest.raises(StoreUnavailable):
            await DiagnosticsService(InMemoryRecordStore(available=False)).test_store_connectivity()

    @pytest.mark.asyncio
    async def test_list_recent_is_clamped(self, store):
        for i in range(120):
            await store.insert(f"O{i}", f"hash-{i}", SALEOR_API_URL)

        diagnostics = DiagnosticsService(store)

        assert len(await diagnostics.list_recent(500)) == 100
        assert len(await diagnostics.list_recent(0)) == 1
        assert await diagnostics.total_count() == 120

    @pytest.mark.asyncio
    async def test_duplicate_report_and_cleanup(self, legacy_store):
        await legacy_store.insert("O1", "dup", SALEOR_API_URL)
        await legacy_store.insert("O2", "dup", SALEOR_API_URL)
        await legacy_store.insert("O3", "other", SALEOR_API_URL)
        diagnostics = DiagnosticsService(legacy_store)

        report = await diagnostics.duplicate_report()
        assert report.has_duplicates is True
        assert report.duplicate_hashes == {"dup": 2}
        assert report.total_records == 3

        assert await diagnostics.cleanup_duplicates() == 1
        assert (await diagnostics.duplicate_report()).has_duplicates is False
        assert await diagnostics.cleanup_duplicates() == 0

    @pytest.mark.asyncio
    async def test_init_schema_is_repeatable(self, store):
        diagnostics = DiagnosticsService(store)

        await diagnostics.init_schema()
        await diagnostics.init_schema()

        assert await diagnostics.find_duplicate_hashes() == {}

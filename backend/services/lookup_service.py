# services/lookup_service.py
# ============================================================================
# SALEOR ORDER HASH APP — LOOKUP SERVICE
# ============================================================================
# Read path: order hash -> order id, optionally enriched with live status or
# metadata from Saleor. Every error kind propagates unchanged so callers
# can tell "hash unknown" from "order gone upstream" from "no credential".
# ============================================================================

from typing import Tuple

import structlog

from errors import CredentialUnavailable
from schemas.order_hash import AuthData, OrderHashRecord, OrderMetadataSnapshot, OrderStatus
from services.saleor_client import SaleorClient
from storage.apl import IAuthDataStore, resolve_credential
from storage.record_store import IRecordStore

logger = structlog.get_logger().bind(component="lookup_service")


class LookupService:

    def __init__(self, store: IRecordStore, saleor: SaleorClient, apl: IAuthDataStore):
        self.store = store
        self.saleor = saleor
        self.apl = apl

    async def resolve(self, order_hash: str) -> OrderHashRecord:
        record = await self.store.find_by_hash(order_hash)
        logger.debug("order_hash_resolved", order_id=record.order_id)
        return record

    async def _credential_for(self, record: OrderHashRecord) -> AuthData:
        auth = await resolve_credential(self.apl, record.saleor_api_url)
        if auth is None:
            logger.warning("credential_unavailable",
                           order_id=record.order_id,
                           saleor_api_url=record.saleor_api_url)
            raise CredentialUnavailable(record.saleor_api_url)
        return auth

    async def resolve_with_status(self, order_hash: str) -> Tuple[OrderHashRecord, OrderStatus]:
        record = await self.resolve(order_hash)
        auth = await self._credential_for(record)
        status = await self.saleor.fetch_order_status(auth, record.order_id)
        return record, status

    async def resolve_with_metadata(self, order_hash: str) -> Tuple[OrderHashRecord, OrderMetadataSnapshot]:
        record = await self.resolve(order_hash)
        auth = await self._credential_for(record)
        snapshot = await self.saleor.fetch_order_metadata(auth, record.order_id)
        return record, snapshot

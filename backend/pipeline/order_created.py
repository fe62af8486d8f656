"""
ORDER_CREATED Handler - Order Hash Issuance
===========================================
Webhook-triggered workflow that gives every new Saleor order a unique hash:

1. Validate  - the payload must name an order (otherwise 400, no side effects)
2. Mint      - bounded loop: generate a candidate, skip it if the store has it
3. Persist   - insert order_id -> hash; failures are recorded, not fatal
4. Reconcile - write the hash into the order's Saleor metadata
5. Ack       - always "Accepted" once validation passed

Delivery is at-least-once and possibly concurrent. Nothing here takes a
lock: the store's UNIQUE constraints decide, and a rejected insert is an
expected outcome. Stage failures never reach the dispatcher; each lands in
the IssuanceOutcome, which is logged once per event.

pip install pydantic structlog
"""

import os
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog

from errors import (
    CredentialUnavailable,
    HashExhaustion,
    PayloadValidationError,
)
from schemas.order_hash import (
    Acknowledgement,
    AuthData,
    IssuanceOutcome,
    IssuanceStage,
    OrderCreatedPayload,
    StageResult,
)
from services.hash_generator import HashGenerator
from services.saleor_client import SaleorClient
from storage.apl import IAuthDataStore, resolve_credential
from storage.record_store import IRecordStore


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class IssuanceConfig:
    max_hash_attempts: int = 10
    # Re-push an order's existing hash on redelivery instead of minting anew
    reuse_existing_hash: bool = False

    @classmethod
    def from_env(cls) -> "IssuanceConfig":
        return cls(
            max_hash_attempts=int(os.getenv("MAX_HASH_ATTEMPTS", "10")),
            reuse_existing_hash=os.getenv("REUSE_EXISTING_HASH", "false").lower() == "true",
        )


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class OrderCreatedHandler:
    """
    Issuance orchestrator for ORDER_CREATED events.

    Example:
        handler = OrderCreatedHandler(store, saleor, apl)
        ack = await handler.on_order_created("T3JkZXI6MQ==", "https://shop.example/graphql/")
        # ack.accepted is True; ack.outcome says what actually happened
    """

    def __init__(
        self,
        store: IRecordStore,
        saleor: SaleorClient,
        apl: IAuthDataStore,
        generator: Optional[HashGenerator] = None,
        config: Optional[IssuanceConfig] = None,
    ):
        self.store = store
        self.saleor = saleor
        self.apl = apl
        self.generator = generator or HashGenerator()
        self.config = config or IssuanceConfig.from_env()
        self._base_logger = structlog.get_logger()

    def _get_logger(self, correlation_id: str = None):
        return self._base_logger.bind(
            component="order_created_handler",
            correlation_id=correlation_id or str(uuid.uuid4()),
        )

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def handle_webhook(
        self,
        payload: OrderCreatedPayload,
        saleor_api_url: str,
        auth: Optional[AuthData] = None,
    ) -> Acknowledgement:
        """Entry point for the HTTP layer"""
        correlation_id = str(uuid.uuid4())
        if payload.order and payload.order.user_email:
            self._get_logger(correlation_id).info("order_created_received", customer=payload.order.user_email)
        return await self.on_order_created(payload.order_id, saleor_api_url, auth, correlation_id=correlation_id)

    async def on_order_created(
        self,
        order_id: Optional[str],
        saleor_api_url: str,
        auth: Optional[AuthData] = None,
        correlation_id: Optional[str] = None,
    ) -> Acknowledgement:
        outcome = IssuanceOutcome(
            correlation_id=correlation_id or str(uuid.uuid4()),
            order_id=order_id,
            saleor_api_url=saleor_api_url or "",
        )
        log = self._get_logger(outcome.correlation_id)

        # 1. Validate
        if not order_id:
            error = PayloadValidationError("Order ID missing")
            outcome.record(StageResult.failed(IssuanceStage.VALIDATE, error))
            log.error("order_id_missing", saleor_api_url=saleor_api_url)
            return Acknowledgement(
                accepted=False,
                status_code=error.status_code,
                message=error.message,
                outcome=outcome,
            )
        outcome.record(StageResult.ok(IssuanceStage.VALIDATE))

        # 2-4. Best effort; only the validation result decides the ack
        await self._issue(outcome, auth, log)

        log.info(
            "order_hash_issuance_complete",
            order_id=order_id,
            order_hash=outcome.order_hash[:12] if outcome.order_hash else None,
            attempts=outcome.attempts,
            degraded=outcome.degraded,
            stages={r.stage.value: r.error_kind or r.status.value for r in outcome.stages},
        )
        return Acknowledgement(accepted=True, status_code=200, message="Accepted", outcome=outcome)

    # =========================================================================
    # STAGES
    # =========================================================================

    async def _issue(self, outcome: IssuanceOutcome, auth: Optional[AuthData], log) -> None:
        if self.config.reuse_existing_hash and await self._reuse_existing(outcome, log):
            await self._reconcile(outcome, auth, log)
            return

        minted = await self._mint(outcome, log)
        if minted is None:
            outcome.record(StageResult.skipped(IssuanceStage.PERSIST, "no hash minted"))
            outcome.record(StageResult.skipped(IssuanceStage.RECONCILE, "no hash minted"))
            return
        outcome.order_hash = minted

        await self._persist(outcome, log)
        await self._reconcile(outcome, auth, log)

    async def _reuse_existing(self, outcome: IssuanceOutcome, log) -> bool:
        try:
            existing = await self.store.find_by_order_id(outcome.order_id)
        except Exception as e:
            log.warning("existing_hash_lookup_failed", order_id=outcome.order_id, error=str(e))
            return False
        if existing is None:
            return False

        outcome.order_hash = existing.order_hash
        outcome.reused_existing = True
        outcome.record(StageResult.skipped(IssuanceStage.MINT, "existing hash reused"))
        outcome.record(StageResult.skipped(IssuanceStage.PERSIST, "record already exists"))
        log.info("existing_hash_reused", order_id=outcome.order_id, record_id=existing.id)
        return True

    async def _mint(self, outcome: IssuanceOutcome, log) -> Optional[str]:
        """Bounded generate-and-check loop. Returns None on exhaustion."""
        for attempt in range(1, self.config.max_hash_attempts + 1):
            outcome.attempts = attempt
            candidate = self.generator.generate()

            try:
                taken = await self.store.exists_by_hash(candidate)
            except Exception as e:
                # The pre-check is only advisory; the insert constraint still guards
                log.warning("hash_precheck_failed", attempt=attempt, error=str(e))
                outcome.record(StageResult.failed(IssuanceStage.MINT, e))
                return candidate

            if not taken:
                outcome.record(StageResult.ok(IssuanceStage.MINT, f"attempt {attempt}"))
                log.info("order_hash_generated", order_id=outcome.order_id, attempt=attempt)
                return candidate

            log.warning("hash_collision", attempt=attempt, order_hash=candidate[:12])

        error = HashExhaustion(self.config.max_hash_attempts)
        outcome.record(StageResult.failed(IssuanceStage.MINT, error))
        log.error("hash_exhaustion", order_id=outcome.order_id, attempts=error.attempts)
        return None

    async def _persist(self, outcome: IssuanceOutcome, log) -> None:
        try:
            record = await self.store.insert(outcome.order_id, outcome.order_hash, outcome.saleor_api_url)
        except Exception as e:
            # Losing the local record must not block the Saleor update
            outcome.record(StageResult.failed(IssuanceStage.PERSIST, e))
            log.error("order_hash_persist_failed",
                      order_id=outcome.order_id,
                      error=str(e),
                      error_kind=getattr(e, "kind", type(e).__name__))
            return

        outcome.record(StageResult.ok(IssuanceStage.PERSIST, f"record {record.id}"))
        log.info("order_hash_stored", order_id=outcome.order_id, record_id=record.id)

    async def _reconcile(self, outcome: IssuanceOutcome, auth: Optional[AuthData], log) -> None:
        try:
            if auth is None:
                auth = await resolve_credential(self.apl, outcome.saleor_api_url)
            if auth is None:
                raise CredentialUnavailable(outcome.saleor_api_url)

            await self.saleor.push_hash_metadata(auth, outcome.order_id, outcome.order_hash)
        except Exception as e:
            outcome.record(StageResult.failed(IssuanceStage.RECONCILE, e))
            log.error("order_metadata_update_failed",
                      order_id=outcome.order_id,
                      error=str(e),
                      error_kind=getattr(e, "kind", type(e).__name__))
            return

        outcome.record(StageResult.ok(IssuanceStage.RECONCILE))
        log.info("order_metadata_updated", order_id=outcome.order_id)

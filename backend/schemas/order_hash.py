# schemas/order_hash.py
# ============================================================================
# SALEOR ORDER HASH APP — DOMAIN SCHEMAS
# ============================================================================
# Type-safe models shared by the store, the Saleor client, the issuance
# pipeline and the API layer.
# ============================================================================

from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
from enum import Enum
import uuid

from pydantic import BaseModel, ConfigDict, Field, computed_field


# The metadata key the hash is written under on the Saleor order
ORDER_HASH_METADATA_KEY = "order_hash"


# ============================================================================
# SECTION 1: PERSISTED RECORD
# ============================================================================

class OrderHashRecord(BaseModel):
    """Durable order_id -> order_hash mapping."""
    model_config = ConfigDict(frozen=True)

    id: int
    order_id: str
    order_hash: str
    saleor_api_url: str = ""
    created_at: datetime


# ============================================================================
# SECTION 2: CREDENTIALS
# ============================================================================

class AuthData(BaseModel):
    """App token for one Saleor instance, as stored by the APL."""
    saleor_api_url: str = Field(alias="saleorApiUrl")
    token: str
    app_id: Optional[str] = Field(default=None, alias="appId")

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# SECTION 3: SALEOR ORDER VIEWS
# ============================================================================

class OrderStatus(BaseModel):
    order_id: str
    status: str
    number: Optional[str] = None


class OrderMetadataSnapshot(BaseModel):
    """Full metadata view of a Saleor order."""
    order_id: str
    number: Optional[str] = None
    status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    private_metadata: Dict[str, str] = Field(default_factory=dict)

    @computed_field
    @property
    def order_hash(self) -> Optional[str]:
        return self.metadata.get(ORDER_HASH_METADATA_KEY)


# ============================================================================
# SECTION 4: WEBHOOK PAYLOAD
# ============================================================================

class WebhookOrder(BaseModel):
    id: Optional[str] = None
    user_email: Optional[str] = Field(default=None, alias="userEmail")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OrderCreatedPayload(BaseModel):
    """
    ORDER_CREATED webhook body.

    Everything is optional so a missing order id surfaces as a validation
    outcome of the pipeline instead of a request parsing error.
    """
    order: Optional[WebhookOrder] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def order_id(self) -> Optional[str]:
        return self.order.id if self.order else None


# ============================================================================
# SECTION 5: ISSUANCE OUTCOME
# ============================================================================

class IssuanceStage(str, Enum):
    VALIDATE = "validate"
    MINT = "mint"
    PERSIST = "persist"
    RECONCILE = "reconcile"


class StageStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class StageResult(BaseModel):
    stage: IssuanceStage
    status: StageStatus
    error_kind: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, stage: IssuanceStage, detail: Optional[str] = None) -> "StageResult":
        return cls(stage=stage, status=StageStatus.OK, detail=detail)

    @classmethod
    def failed(cls, stage: IssuanceStage, error: Exception) -> "StageResult":
        return cls(
            stage=stage,
            status=StageStatus.FAILED,
            error_kind=getattr(error, "kind", type(error).__name__),
            detail=str(error),
        )

    @classmethod
    def skipped(cls, stage: IssuanceStage, detail: Optional[str] = None) -> "StageResult":
        return cls(stage=stage, status=StageStatus.SKIPPED, detail=detail)


class IssuanceOutcome(BaseModel):
    """Per-event record of what each pipeline stage did."""
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    order_id: Optional[str] = None
    saleor_api_url: str = ""
    order_hash: Optional[str] = None
    attempts: int = 0
    reused_existing: bool = False
    stages: List[StageResult] = Field(default_factory=list)

    def record(self, result: StageResult) -> StageResult:
        self.stages.append(result)
        return result

    def stage(self, stage: IssuanceStage) -> Optional[StageResult]:
        for result in self.stages:
            if result.stage == stage:
                return result
        return None

    @computed_field
    @property
    def degraded(self) -> bool:
        """True when validation passed but a later stage failed."""
        return any(r.status == StageStatus.FAILED for r in self.stages[1:])


class Acknowledgement(BaseModel):
    """What the webhook dispatcher is told."""
    accepted: bool
    status_code: int
    message: str
    outcome: IssuanceOutcome


# ============================================================================
# SECTION 6: DIAGNOSTICS
# ============================================================================

class DuplicateReport(BaseModel):
    duplicate_hashes: Dict[str, int] = Field(default_factory=dict)
    duplicate_order_ids: Dict[str, int] = Field(default_factory=dict)
    total_records: int = 0

    @computed_field
    @property
    def has_duplicates(self) -> bool:
        return bool(self.duplicate_hashes or self.duplicate_order_ids)


class ConnectivityReport(BaseModel):
    ok: bool
    latency_ms: float
    total_records: Optional[int] = None
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

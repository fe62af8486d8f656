# errors.py
# ============================================================================
# SALEOR ORDER HASH APP — ERROR TAXONOMY
# ============================================================================
# Every failure the core can report. Each error carries a machine-readable
# `kind` and the HTTP status the API layer maps it to.
# ============================================================================

from typing import Any, Dict, List, Optional


class OrderHashAppError(Exception):
    """Base error for the order hash app."""

    kind: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message}


# =============================================================================
# INPUT
# =============================================================================

class PayloadValidationError(OrderHashAppError):
    """Incoming webhook payload is malformed (e.g. no order id)."""

    kind = "validation_error"
    status_code = 400


# =============================================================================
# RECORD STORE
# =============================================================================

class StoreUnavailable(OrderHashAppError):
    """Backing store is unreachable, timed out, or not configured."""

    kind = "store_unavailable"
    status_code = 503


class DuplicateOrderId(OrderHashAppError):
    kind = "duplicate_order_id"
    status_code = 409

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} already has a hash", order_id=order_id)
        self.order_id = order_id


class DuplicateToken(OrderHashAppError):
    kind = "duplicate_hash"
    status_code = 409

    def __init__(self, order_hash: str):
        super().__init__("Order hash already exists", order_hash=order_hash[:12])
        self.order_hash = order_hash


class RecordNotFound(OrderHashAppError):
    kind = "record_not_found"
    status_code = 404


# =============================================================================
# HASH MINTING
# =============================================================================

class HashExhaustion(OrderHashAppError):
    """Every candidate in the bounded mint loop collided."""

    kind = "hash_exhaustion"
    status_code = 500

    def __init__(self, attempts: int):
        super().__init__(f"No unique hash after {attempts} attempts", attempts=attempts)
        self.attempts = attempts


# =============================================================================
# CREDENTIALS / SALEOR
# =============================================================================

class CredentialUnavailable(OrderHashAppError):
    """No auth data on file for a Saleor API URL."""

    kind = "credential_unavailable"
    status_code = 424

    def __init__(self, saleor_api_url: str):
        super().__init__(
            f"No auth data registered for {saleor_api_url or '<unknown>'}",
            saleor_api_url=saleor_api_url,
        )
        self.saleor_api_url = saleor_api_url


class RemoteError(OrderHashAppError):
    """Base for Saleor API failures."""

    kind = "remote_error"
    status_code = 502


class RemoteUnreachable(RemoteError):
    kind = "remote_unreachable"


class RemoteAuthRejected(RemoteError):
    kind = "remote_auth_rejected"


class RemoteValidationError(RemoteError):
    """Saleor rejected the request: GraphQL errors or mutation field errors."""

    kind = "remote_validation_error"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class RemoteOrderNotFound(RemoteError):
    """Saleor no longer knows the order."""

    kind = "remote_order_not_found"
    status_code = 404

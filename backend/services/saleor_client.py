# services/saleor_client.py
# ============================================================================
# SALEOR ORDER HASH APP — SALEOR CLIENT
# ============================================================================
# Purpose: write the order hash into Saleor order metadata and read order
# status/metadata back.
#
# FAILURE HANDLING:
# - Every call carries its own AuthData; nothing is cached here
# - Failures are classified (unreachable / auth rejected / validation /
#   order not found) and raised, never retried
# - One shared httpx.AsyncClient; safe for concurrent requests
# ============================================================================

import os
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

import httpx
import structlog

from errors import (
    RemoteAuthRejected,
    RemoteOrderNotFound,
    RemoteUnreachable,
    RemoteValidationError,
)
from schemas.order_hash import (
    ORDER_HASH_METADATA_KEY,
    AuthData,
    OrderMetadataSnapshot,
    OrderStatus,
)

logger = structlog.get_logger().bind(component="saleor_client")


# ============================================================================
# SECTION 1: CONFIGURATION
# ============================================================================

@dataclass
class SaleorClientConfig:
    timeout_seconds: float = 10.0
    max_connections: int = 50

    @classmethod
    def from_env(cls) -> "SaleorClientConfig":
        return cls(
            timeout_seconds=float(os.getenv("SALEOR_TIMEOUT", "10.0")),
            max_connections=int(os.getenv("SALEOR_MAX_CONNECTIONS", "50")),
        )


# ============================================================================
# SECTION 2: GRAPHQL DOCUMENTS
# ============================================================================

UPDATE_METADATA_MUTATION = """
mutation UpdateOrderMetadata($id: ID!, $input: [MetadataInput!]!) {
  updateMetadata(id: $id, input: $input) {
    errors {
      field
      message
      code
    }
    item {
      id
    }
  }
}
"""

ORDER_STATUS_QUERY = """
query OrderStatus($id: ID!) {
  order(id: $id) {
    id
    number
    status
  }
}
"""

ORDER_METADATA_QUERY = """
query OrderMetadata($id: ID!) {
  order(id: $id) {
    id
    number
    status
    metadata {
      key
      value
    }
    privateMetadata {
      key
      value
    }
  }
}
"""

# Error codes Saleor uses when the app token is missing, expired or lacks permission
AUTH_ERROR_CODES = {
    "PermissionDenied",
    "JSONWebTokenError",
    "JSONWebTokenExpired",
    "JSONWebTokenSignatureError",
    "UNAUTHENTICATED",
    "PERMISSION_DENIED",
}


def _error_code(error: Dict[str, Any]) -> Optional[str]:
    extensions = error.get("extensions") or {}
    exception = extensions.get("exception") or {}
    return exception.get("code") or extensions.get("code")


def _pairs_to_dict(items: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    return {item["key"]: item["value"] for item in items or []}


# ============================================================================
# SECTION 3: CLIENT
# ============================================================================

class SaleorClient:
    """Saleor GraphQL API client scoped to order metadata"""

    def __init__(
        self,
        config: Optional[SaleorClientConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or SaleorClientConfig.from_env()
        self._client = client or httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            limits=httpx.Limits(max_connections=self.config.max_connections),
        )

    async def close(self):
        await self._client.aclose()

    async def _execute(
        self,
        auth: AuthData,
        query: str,
        variables: Dict[str, Any],
        operation: str,
    ) -> Dict[str, Any]:
        """POST a GraphQL document and return its `data`, classifying failures"""
        try:
            response = await self._client.post(
                auth.saleor_api_url,
                json={"query": query, "variables": variables},
                headers={"Authorization": f"Bearer {auth.token}"},
            )
        except httpx.TimeoutException as e:
            logger.warning("saleor_timeout", operation=operation, saleor_api_url=auth.saleor_api_url)
            raise RemoteUnreachable(f"Saleor timed out during {operation}") from e
        except httpx.HTTPError as e:
            logger.warning("saleor_transport_error", operation=operation, error=str(e))
            raise RemoteUnreachable(f"Saleor unreachable during {operation}: {e}") from e

        if response.status_code in (401, 403):
            raise RemoteAuthRejected(f"Saleor rejected credentials ({response.status_code})")
        if response.status_code >= 500:
            raise RemoteUnreachable(f"Saleor returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteUnreachable(f"Saleor returned a non-JSON body ({response.status_code})") from e
        if not isinstance(body, dict):
            raise RemoteUnreachable(f"Saleor returned an unexpected body ({response.status_code})")

        errors = body.get("errors") or []
        if errors:
            if any(_error_code(err) in AUTH_ERROR_CODES for err in errors):
                raise RemoteAuthRejected(errors[0].get("message", "Permission denied"))
            raise RemoteValidationError(
                f"GraphQL errors during {operation}",
                errors=[{"message": err.get("message"), "code": _error_code(err)} for err in errors],
            )
        if response.status_code >= 400:
            raise RemoteValidationError(f"Saleor returned HTTP {response.status_code} for {operation}")

        return body.get("data") or {}

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def push_hash_metadata(self, auth: AuthData, order_id: str, order_hash: str) -> str:
        """Set metadata[order_hash] on the order. Returns the updated item id."""
        data = await self._execute(
            auth,
            UPDATE_METADATA_MUTATION,
            {"id": order_id, "input": [{"key": ORDER_HASH_METADATA_KEY, "value": order_hash}]},
            operation="updateMetadata",
        )

        result = data.get("updateMetadata") or {}
        field_errors = result.get("errors") or []
        if field_errors:
            raise RemoteValidationError("Metadata update rejected", errors=field_errors)

        item = result.get("item")
        if not item:
            raise RemoteOrderNotFound(f"Order {order_id} not found in Saleor")

        logger.info("saleor_metadata_updated", order_id=order_id, order_hash=order_hash[:12])
        return item["id"]

    # =========================================================================
    # READS
    # =========================================================================

    async def fetch_order_status(self, auth: AuthData, order_id: str) -> OrderStatus:
        data = await self._execute(auth, ORDER_STATUS_QUERY, {"id": order_id}, operation="order")
        order = data.get("order")
        if not order:
            raise RemoteOrderNotFound(f"Order {order_id} not found in Saleor")
        return OrderStatus(order_id=order["id"], status=order["status"], number=order.get("number"))

    async def fetch_order_metadata(self, auth: AuthData, order_id: str) -> OrderMetadataSnapshot:
        data = await self._execute(auth, ORDER_METADATA_QUERY, {"id": order_id}, operation="order")
        order = data.get("order")
        if not order:
            raise RemoteOrderNotFound(f"Order {order_id} not found in Saleor")
        return OrderMetadataSnapshot(
            order_id=order["id"],
            number=order.get("number"),
            status=order.get("status"),
            metadata=_pairs_to_dict(order.get("metadata")),
            private_metadata=_pairs_to_dict(order.get("privateMetadata")),
        )

# services/__init__.py
# ============================================================================
# SALEOR ORDER HASH APP — SERVICES MODULE
# ============================================================================
# Hash generation, Saleor API access, lookups and diagnostics
# ============================================================================

from services.hash_generator import (
    HashGenerator,
    generate_order_hash,
)

from services.saleor_client import (
    SaleorClient,
    SaleorClientConfig,
)

from services.lookup_service import LookupService

from services.diagnostics_service import DiagnosticsService

__all__ = [
    # Hash generation
    "HashGenerator",
    "generate_order_hash",
    # Saleor
    "SaleorClient",
    "SaleorClientConfig",
    # Read side
    "LookupService",
    "DiagnosticsService",
]

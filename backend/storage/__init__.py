# storage/__init__.py
# ============================================================================
# SALEOR ORDER HASH APP — STORAGE MODULE
# ============================================================================
# Order hash records and the auth persistence layer (APL)
# ============================================================================

from storage.record_store import (
    IRecordStore,
    InMemoryRecordStore,
    PostgresRecordStore,
)

from storage.apl import (
    AplConfig,
    IAuthDataStore,
    InMemoryAPL,
    FileAPL,
    UpstashAPL,
    build_apl,
    resolve_credential,
)

__all__ = [
    "IRecordStore",
    "InMemoryRecordStore",
    "PostgresRecordStore",
    "AplConfig",
    "IAuthDataStore",
    "InMemoryAPL",
    "FileAPL",
    "UpstashAPL",
    "build_apl",
    "resolve_credential",
]

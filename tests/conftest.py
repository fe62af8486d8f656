"""
Shared pytest fixtures for the order hash app test suite.
"""

from unittest.mock import AsyncMock

import pytest

from pipeline.order_created import IssuanceConfig, OrderCreatedHandler
from schemas.order_hash import AuthData
from services.saleor_client import SaleorClient
from storage.apl import InMemoryAPL
from storage.record_store import InMemoryRecordStore

from tests.helpers import SALEOR_API_URL


@pytest.fixture
def auth_data() -> AuthData:
    return AuthData(saleor_api_url=SALEOR_API_URL, token="app-token", app_id="app-1")


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def legacy_store() -> InMemoryRecordStore:
    """A store created before UNIQUE constraints existed."""
    return InMemoryRecordStore(enforce_constraints=False)


@pytest.fixture
def apl(auth_data) -> InMemoryAPL:
    return InMemoryAPL([auth_data])


@pytest.fixture
def saleor() -> AsyncMock:
    client = AsyncMock(spec=SaleorClient)
    client.push_hash_metadata.return_value = "T3JkZXI6MQ=="
    return client


@pytest.fixture
def make_handler(saleor, apl):
    def _make(store, generator=None, **config):
        return OrderCreatedHandler(
            store=store,
            saleor=saleor,
            apl=apl,
            generator=generator,
            config=IssuanceConfig(**config),
        )
    return _make

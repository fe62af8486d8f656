"""
HTTP surface tests.

The lifespan is not entered; services are injected through
app.dependency_overrides so no database or Saleor instance is needed.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from api.server import AppServices, app, get_services
from database import Database, DatabaseConfig
from errors import RemoteOrderNotFound
from pipeline.order_created import IssuanceConfig
from schemas.order_hash import OrderStatus
from services.saleor_client import SaleorClient
from storage.apl import InMemoryAPL
from storage.record_store import InMemoryRecordStore, PostgresRecordStore

from tests.helpers import SALEOR_API_URL

WEBHOOK = "/api/webhooks/order-created"


@pytest.fixture
def saleor_mock() -> AsyncMock:
    client = AsyncMock(spec=SaleorClient)
    client.push_hash_metadata.return_value = "O1"
    return client


@pytest.fixture
def make_client(auth_data, saleor_mock):
    def _make(store=None, apl=None):
        services = AppServices.build(
            store=store or InMemoryRecordStore(),
            apl=apl if apl is not None else InMemoryAPL([auth_data]),
            saleor=saleor_mock,
            issuance_config=IssuanceConfig(),
        )
        app.dependency_overrides[get_services] = lambda: services
        return TestClient(app), services

    yield _make
    app.dependency_overrides.clear()


def _post_order(client, body):
    return client.post(WEBHOOK, json=body, headers={"saleor-api-url": SALEOR_API_URL})


class TestHealth:

    def test_health(self, make_client):
        client, _ = make_client()

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Response-Time-Ms" in response.headers


class TestWebhook:

    def test_accepts_order_created(self, make_client, saleor_mock):
        client, _ = make_client()

        response = _post_order(client, {"order": {"id": "O1", "userEmail": "a@b.c"}})

        assert response.status_code == 200
        assert response.text == "Accepted"
        assert response.headers["X-Correlation-ID"]
        saleor_mock.push_hash_metadata.assert_awaited_once()

    def test_missing_order_id(self, make_client, saleor_mock):
        client, _ = make_client()

        response = _post_order(client, {"order": {}})

        assert response.status_code == 400
        assert response.text == "Order ID missing"
        saleor_mock.push_hash_metadata.assert_not_called()

    def test_unparseable_body_is_missing_order(self, make_client):
        client, _ = make_client()

        response = client.post(WEBHOOK, content=b"not json", headers={"saleor-api-url": SALEOR_API_URL})

        assert response.status_code == 400

    def test_unconfigured_database_still_acknowledges(self, make_client, saleor_mock):
        store = PostgresRecordStore(Database(DatabaseConfig(database_url=None)))
        client, _ = make_client(store=store)

        response = _post_order(client, {"order": {"id": "O1"}})

        assert response.status_code == 200
        saleor_mock.push_hash_metadata.assert_awaited_once()

    def test_redelivery_acknowledged_twice(self, make_client):
        client, _ = make_client()

        first = _post_order(client, {"order": {"id": "O1"}})
        second = _post_order(client, {"order": {"id": "O1"}})

        assert first.status_code == second.status_code == 200


class TestLookup:

    def test_lookup_by_hash(self, make_client):
        client, services = make_client()
        _post_order(client, {"order": {"id": "O1"}})
        order_hash = services.saleor.push_hash_metadata.await_args.args[2]

        response = client.get(f"/api/orders/by-hash/{order_hash}")

        assert response.status_code == 200
        body = response.json()
        assert body["order_id"] == "O1"
        assert body["saleor_api_url"] == SALEOR_API_URL

    def test_unknown_hash_is_404(self, make_client):
        client, _ = make_client()

        response = client.get("/api/orders/by-hash/unknown")

        assert response.status_code == 404
        assert response.json()["error"] == "record_not_found"

    def test_lookup_with_status(self, make_client, saleor_mock):
        client, _ = make_client()
        saleor_mock.fetch_order_status.return_value = OrderStatus(order_id="O1", status="UNCONFIRMED", number="7")
        _post_order(client, {"order": {"id": "O1"}})
        order_hash = saleor_mock.push_hash_metadata.await_args.args[2]

        response = client.get(f"/api/orders/by-hash/{order_hash}", params={"include_status": "true"})

        assert response.status_code == 200
        assert response.json()["status"] == "UNCONFIRMED"
        assert response.json()["number"] == "7"

    def test_order_gone_upstream_is_404(self, make_client, saleor_mock):
        client, _ = make_client()
        _post_order(client, {"order": {"id": "O1"}})
        order_hash = saleor_mock.push_hash_metadata.await_args.args[2]
        saleor_mock.fetch_order_metadata.side_effect = RemoteOrderNotFound("gone")

        response = client.get(f"/api/orders/by-hash/{order_hash}/metadata")

        assert response.status_code == 404
        assert response.json()["error"] == "remote_order_not_found"

    def test_missing_credential_is_424(self, make_client):
        client, _ = make_client(apl=InMemoryAPL())
        _post_order(client, {"order": {"id": "O1"}})
        order_hash = client.get("/api/admin/records").json()["records"][0]["order_hash"]

        response = client.get(f"/api/orders/by-hash/{order_hash}", params={"include_status": "true"})

        assert response.status_code == 424
        assert response.json()["error"] == "credential_unavailable"

    def test_unconfigured_database_is_503(self, make_client):
        client, _ = make_client(store=PostgresRecordStore(Database(DatabaseConfig(database_url=None))))

        response = client.get("/api/orders/by-hash/anything")

        assert response.status_code == 503
        assert response.json()["error"] == "store_unavailable"


class TestAdmin:

    def test_records_listing_and_limit_bounds(self, make_client):
        client, _ = make_client()
        for i in range(3):
            _post_order(client, {"order": {"id": f"O{i}"}})

        response = client.get("/api/admin/records", params={"limit": 2})

        assert response.status_code == 200
        assert response.json()["count"] == 2
        assert client.get("/api/admin/records", params={"limit": 101}).status_code == 422

    def test_duplicates_report_and_cleanup(self, make_client):
        client, _ = make_client(store=InMemoryRecordStore(enforce_constraints=False))
        _post_order(client, {"order": {"id": "O1"}})
        _post_order(client, {"order": {"id": "O1"}})

        report = client.get("/api/admin/duplicates").json()
        assert report["duplicate_order_ids"] == {"O1": 2}
        assert report["has_duplicates"] is True

        # Order duplicates carry distinct hashes; cleanup only collapses hash duplicates
        assert client.post("/api/admin/duplicates/cleanup").json() == {"rows_removed": 0}

    def test_init_schema_and_connection(self, make_client):
        client, _ = make_client()

        assert client.post("/api/admin/init-schema").json() == {"status": "ok"}

        report = client.get("/api/admin/test-connection").json()
        assert report["ok"] is True
        assert report["total_records"] == 0

    def test_connection_failure_is_503(self, make_client):
        client, _ = make_client(store=InMemoryRecordStore(available=False))

        response = client.get("/api/admin/test-connection")

        assert response.status_code == 503

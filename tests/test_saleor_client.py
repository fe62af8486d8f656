"""Tests for the Saleor GraphQL client error classification."""

import json

import httpx
import pytest

from errors import (
    RemoteAuthRejected,
    RemoteOrderNotFound,
    RemoteUnreachable,
    RemoteValidationError,
)
from services.saleor_client import SaleorClient, SaleorClientConfig


def make_client(handler) -> SaleorClient:
    transport = httpx.MockTransport(handler)
    return SaleorClient(SaleorClientConfig(), client=httpx.AsyncClient(transport=transport))


def graphql(data=None, errors=None, status_code=200):
    body = {"data": data}
    if errors:
        body["errors"] = errors
    return httpx.Response(status_code, json=body)


class TestPushHashMetadata:

    @pytest.mark.asyncio
    async def test_sends_authenticated_mutation(self, auth_data):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return graphql({"updateMetadata": {"errors": [], "item": {"id": "T3JkZXI6MQ=="}}})

        client = make_client(handler)
        item_id = await client.push_hash_metadata(auth_data, "T3JkZXI6MQ==", "abc123")

        assert item_id == "T3JkZXI6MQ=="
        assert seen["url"] == auth_data.saleor_api_url
        assert seen["auth"] == "Bearer app-token"
        assert seen["body"]["variables"] == {
            "id": "T3JkZXI6MQ==",
            "input": [{"key": "order_hash", "value": "abc123"}],
        }
        assert "updateMetadata" in seen["body"]["query"]

    @pytest.mark.asyncio
    async def test_mutation_field_errors(self, auth_data):
        def handler(request):
            return graphql({"updateMetadata": {
                "errors": [{"field": "id", "message": "Couldn't resolve to a node", "code": "NOT_FOUND"}],
                "item": None,
            }})

        with pytest.raises(RemoteValidationError) as exc_info:
            await make_client(handler).push_hash_metadata(auth_data, "bad", "abc")

        assert exc_info.value.errors[0]["field"] == "id"

    @pytest.mark.asyncio
    async def test_permission_denied_is_auth_rejected(self, auth_data):
        def handler(request):
            return graphql(errors=[{
                "message": "You need one of the following permissions: MANAGE_ORDERS",
                "extensions": {"exception": {"code": "PermissionDenied"}},
            }])

        with pytest.raises(RemoteAuthRejected):
            await make_client(handler).push_hash_metadata(auth_data, "O1", "abc")

    @pytest.mark.asyncio
    async def test_http_401_is_auth_rejected(self, auth_data):
        with pytest.raises(RemoteAuthRejected):
            await make_client(lambda r: httpx.Response(401)).push_hash_metadata(auth_data, "O1", "abc")

    @pytest.mark.asyncio
    async def test_other_graphql_errors_are_validation_errors(self, auth_data):
        def handler(request):
            return graphql(errors=[{"message": "Variable '$id' got invalid value"}], status_code=400)

        with pytest.raises(RemoteValidationError):
            await make_client(handler).push_hash_metadata(auth_data, "O1", "abc")

    @pytest.mark.asyncio
    async def test_timeout_is_unreachable(self, auth_data):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(RemoteUnreachable):
            await make_client(handler).push_hash_metadata(auth_data, "O1", "abc")

    @pytest.mark.asyncio
    async def test_server_error_is_unreachable(self, auth_data):
        with pytest.raises(RemoteUnreachable):
            await make_client(lambda r: httpx.Response(503, text="down")).push_hash_metadata(
                auth_data, "O1", "abc"
            )


    @pytest.mark.parametrize("body", [[], "oops", 42])
    @pytest.mark.asyncio
    async def test_non_object_json_body_is_unreachable(self, auth_data, body):
        with pytest.raises(RemoteUnreachable, match="unexpected body"):
            await make_client(lambda r: httpx.Response(200, json=body)).push_hash_metadata(auth_data, "O1", "abc")


class TestOrderReads:

    @pytest.mark.asyncio
    async def test_fetch_order_status(self, auth_data):
        def handler(request):
            return graphql({"order": {"id": "O1", "number": "42", "status": "UNFULFILLED"}})

        status = await make_client(handler).fetch_order_status(auth_data, "O1")

        assert status.status == "UNFULFILLED"
        assert status.number == "42"

    @pytest.mark.asyncio
    async def test_fetch_order_metadata(self, auth_data):
        def handler(request):
            return graphql({"order": {
                "id": "O1",
                "number": "42",
                "status": "FULFILLED",
                "metadata": [{"key": "order_hash", "value": "abc"}, {"key": "gift", "value": "yes"}],
                "privateMetadata": [{"key": "internal", "value": "1"}],
            }})

        snapshot = await make_client(handler).fetch_order_metadata(auth_data, "O1")

        assert snapshot.order_hash == "abc"
        assert snapshot.metadata["gift"] == "yes"
        assert snapshot.private_metadata == {"internal": "1"}

    @pytest.mark.asyncio
    async def test_vanished_order(self, auth_data):
        with pytest.raises(RemoteOrderNotFound):
            await make_client(lambda r: graphql({"order": None})).fetch_order_status(auth_data, "O1")

    @pytest.mark.asyncio
    async def test_read_with_non_object_body(self, auth_data):
        with pytest.raises(RemoteUnreachable):
            await make_client(lambda r: httpx.Response(200, json=[])).fetch_order_status(auth_data, "O1")

"""
Tests for application wiring.

Tests cover:
- Health endpoint
- RFC 7807 error format and correlation IDs
- OpenAPI document location
- Masking of the configured authorization header in request logs
"""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from ftex_api.main import create_app
from ftex_api.middleware import StructuredLoggingMiddleware
from ftex_api.middleware.logging import filter_headers


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["components"] == {"ledger": "healthy", "offer_cache": "healthy"}

    @pytest.mark.asyncio
    async def test_unhealthy_cache(self, client, offer_cache, monkeypatch):
        """Should answer 503 when a component is down."""
        monkeypatch.setattr(offer_cache, "ping", AsyncMock(return_value=False))

        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["components"]["offer_cache"] == "unhealthy"


class TestErrorFormat:

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/nowhere")

        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")

    @pytest.mark.asyncio
    async def test_request_id_propagated(self, client, base, auth_headers):
        """Should echo the caller's request id in the header and the problem body."""
        headers = {**auth_headers, "X-Request-ID": "req_from_client"}

        response = await client.get(f"{base}/fiat/info/balance/EUR", headers=headers)

        assert response.status_code == 404
        assert response.headers["X-Request-ID"] == "req_from_client"
        assert response.json()["request_id"] == "req_from_client"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client, base, auth_headers):
        response = await client.get(f"{base}/fiat/info/balance", headers=auth_headers)

        assert response.headers["X-Request-ID"].startswith("req_")


class TestDocs:

    @pytest.mark.asyncio
    async def test_openapi_under_base_path(self, client, base):
        response = await client.get(f"{base}/openapi.json")

        assert response.status_code == 200
        assert f"{base}/fiat/exchange/offer" in response.json()["paths"]

    @pytest.mark.asyncio
    async def test_playground(self, client):
        response = await client.get("/playground")
        assert response.status_code == 200


class TestCustomAuthorizationHeader:

    @pytest.fixture
    def custom_app(self, settings, ledger, offer_cache):
        custom = settings.model_copy(
            update={"authorization": settings.authorization.model_copy(update={"header_key": "X-Ftex-Token"})}
        )
        return create_app(custom, ledger=ledger, offer_cache=offer_cache)

    def test_header_masked_in_logs(self, custom_app, make_token, client_id):
        """Should mask a custom authorization header alongside the defaults."""
        middleware = next(m for m in custom_app.user_middleware if m.cls is StructuredLoggingMiddleware)
        sensitive = middleware.kwargs["config"].sensitive_headers
        token = make_token(client_id)

        masked = filter_headers({"X-Ftex-Token": f"Bearer {token}"}, sensitive)

        assert "authorization" in sensitive
        assert "x-ftex-token" in sensitive
        assert token not in masked["X-Ftex-Token"]

    @pytest.mark.asyncio
    async def test_requests_authenticate_with_custom_header(self, custom_app, base, make_token, client_id):
        async with AsyncClient(transport=ASGITransport(app=custom_app), base_url="http://test") as ac:
            response = await ac.post(
                f"{base}/fiat/open",
                json={"currency": "USD"},
                headers={"X-Ftex-Token": f"Bearer {make_token(client_id)}"},
            )

        assert response.status_code == 201

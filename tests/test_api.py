"""
Tests for the REST API layer.

Covers:
  - Route wiring for issue / transfer / clear / health
  - Error body shape and status mapping for each failure kind
  - Malformed JSON handling
  - API key authentication, rate limiting, CORS
"""

from __future__ import annotations

import pytest
from aiohttp.test_utils import TestClient, TestServer
from conftest import MNEMONIC_C, FakeChain, connector_for, make_config, make_identity

from adminrights_core.api import APIServer, _TokenBucket, status_for
from adminrights_core.config import APIConfig
from adminrights_core.errors import (
    ConfirmationTimeout,
    ConnectionFailure,
    InvalidSecret,
    MalformedAmount,
    NodeInternalError,
    PayloadTooLarge,
    SimulationRejected,
    SubmissionRejected,
)
from adminrights_core.node_client import TxStatus
from adminrights_core.service import AdminRightsService

ISSUE = {"symbol": "ABC", "subunit": "abc", "precision": 6,
         "initial_amount": "1000000", "description": "test token"}


def _build_api_config(**overrides) -> APIConfig:
    defaults = {
        "host": "127.0.0.1",
        "port": 8080,
        "api_key": "",
        "rate_limit_rpm": 0,
        "cors_origins": [],
        "max_body_bytes": 65_536,
    }
    defaults.update(overrides)
    return APIConfig(**defaults)


def _make_test_client(chain: FakeChain | None = None, api_config=None, connector=None):
    chain = chain or FakeChain()
    service = AdminRightsService(make_config(), connector=connector or connector_for(chain))
    api = APIServer(service, host="127.0.0.1", port=0,
                    api_config=api_config or _build_api_config())
    return TestClient(TestServer(api.build_app())), chain


# ═══════════════════════════════════════════════════════════════════
#  Status mapping
# ═══════════════════════════════════════════════════════════════════

class TestStatusFor:
    @pytest.mark.parametrize("exc,status", [
        (MalformedAmount("bad"), 400),
        (PayloadTooLarge("big"), 413),
        (InvalidSecret("bad"), 500),
        (ConnectionFailure("down"), 502),
        (SimulationRejected("no"), 422),
        (SubmissionRejected("no", code=13), 409),
        (SubmissionRejected("reset", outcome_known=False), 502),
        (ConfirmationTimeout("slow", tx_hash="H"), 504),
        (NodeInternalError("opaque"), 502),
    ])
    def test_mapping(self, exc, status):
        assert status_for(exc) == status


# ═══════════════════════════════════════════════════════════════════
#  Routes
# ═══════════════════════════════════════════════════════════════════

class TestRoutes:
    @pytest.mark.asyncio
    async def test_health(self):
        client, _ = _make_test_client()
        async with client:
            resp = await client.get("/health")
            assert resp.status == 200
            body = await resp.json()
            assert body["ok"] is True
            assert body["chain_id"] == "coreum-testnet-1"

    @pytest.mark.asyncio
    async def test_issue_token(self):
        client, _ = _make_test_client()
        async with client:
            resp = await client.post("/api/issue-token", json=ISSUE)
            assert resp.status == 200
            body = await resp.json()
        assert body["message"] == "Fungible token class issued successfully"
        assert body["transaction_id"] == "HASH1"
        assert body["denom"] == f"abc-{body['issuer_address']}"

    @pytest.mark.asyncio
    async def test_transfer_admin(self):
        client, _ = _make_test_client()
        async with client:
            resp = await client.post("/api/transfer-admin",
                                     json={"denom": "abc-x",
                                           "new_admin": make_identity(MNEMONIC_C).address})
            assert resp.status == 200
            assert (await resp.json())["message"] == "Admin rights transferred successfully"

    @pytest.mark.asyncio
    async def test_clear_admin(self):
        client, _ = _make_test_client()
        async with client:
            resp = await client.post("/api/clear-admin", json={"denom": "abc-x"})
            assert resp.status == 200
            assert await resp.json() == {"message": "Admin rights cleared successfully",
                                         "transaction_id": "HASH1"}


# ═══════════════════════════════════════════════════════════════════
#  Error bodies
# ═══════════════════════════════════════════════════════════════════

class TestErrors:
    @pytest.mark.asyncio
    async def test_malformed_amount(self):
        client, chain = _make_test_client()
        async with client:
            resp = await client.post("/api/issue-token",
                                     json=dict(ISSUE, initial_amount="12abc"))
            assert resp.status == 400
            body = await resp.json()
        assert body["error"] == "malformed_amount"
        assert body["retry_safe"] is True
        assert chain.calls == []

    @pytest.mark.asyncio
    async def test_missing_denom(self):
        client, _ = _make_test_client()
        async with client:
            resp = await client.post("/api/clear-admin", json={})
            assert resp.status == 400
            body = await resp.json()
        assert body == {"error": "missing_field", "message": "denom is required",
                        "retry_safe": True}

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client, _ = _make_test_client()
        async with client:
            resp = await client.post("/api/clear-admin", data=b"{not json",
                                     headers={"Content-Type": "application/json"})
            assert resp.status == 400
            assert (await resp.json())["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_invalid_new_admin(self):
        client, chain = _make_test_client()
        async with client:
            resp = await client.post("/api/transfer-admin",
                                     json={"denom": "abc-x", "new_admin": "testcore1new"})
            assert resp.status == 400
            body = await resp.json()
        assert body["error"] == "validation_error"
        assert "new_admin" in body["message"]
        assert chain.calls == []

    @pytest.mark.asyncio
    async def test_json_array_rejected(self):
        client, _ = _make_test_client()
        async with client:
            resp = await client.post("/api/clear-admin", json=["abc-x"])
            assert resp.status == 400
            assert (await resp.json())["message"] == "JSON body must be an object"

    @pytest.mark.asyncio
    async def test_unreachable_node(self):
        async def unreachable(_cfg):
            raise ConnectionFailure("Cannot reach node")

        client, _ = _make_test_client(connector=unreachable)
        async with client:
            resp = await client.post("/api/issue-token", json=ISSUE)
            assert resp.status == 502
            body = await resp.json()
        assert body["error"] == "connection_error"
        assert body["retry_safe"] is True

    @pytest.mark.asyncio
    async def test_simulation_rejected(self):
        chain = FakeChain()
        chain.fail["simulate"] = SimulationRejected("Simulation failed: not admin")
        client, _ = _make_test_client(chain)
        async with client:
            resp = await client.post("/api/clear-admin", json={"denom": "abc-x"})
            assert resp.status == 422
            assert "not admin" in (await resp.json())["message"]

    @pytest.mark.asyncio
    async def test_timeout_reports_pending_hash(self):
        chain = FakeChain()
        chain.fail["await"] = ConfirmationTimeout("not confirmed", tx_hash="HASH1")
        client, _ = _make_test_client(chain)
        async with client:
            resp = await client.post("/api/clear-admin", json={"denom": "abc-x"})
            assert resp.status == 504
            body = await resp.json()
        assert body["retry_safe"] is False
        assert body["pending_tx_hash"] == "HASH1"
        assert "transaction_id" not in body

    @pytest.mark.asyncio
    async def test_failed_on_chain(self):
        client, _ = _make_test_client(FakeChain(status=TxStatus.FAILED, code=5))
        async with client:
            resp = await client.post("/api/clear-admin", json={"denom": "abc-x"})
            assert resp.status == 409
            body = await resp.json()
        assert body["error"] == "submission_rejected"
        assert "transaction_id" not in body
        assert "pending_tx_hash" not in body

    @pytest.mark.asyncio
    async def test_mnemonic_never_in_response(self):
        client, _ = _make_test_client()
        async with client:
            resp = await client.post("/api/issue-token", json=ISSUE)
            text = await resp.text()
        assert "abandon" not in text
        assert "legal winner" not in text


# ═══════════════════════════════════════════════════════════════════
#  Security middleware
# ═══════════════════════════════════════════════════════════════════

class TestAPIKeyAuth:
    @pytest.mark.asyncio
    async def test_get_allowed_without_key(self):
        client, _ = _make_test_client(api_config=_build_api_config(api_key="secret123"))
        async with client:
            resp = await client.get("/health")
            assert resp.status == 200

    @pytest.mark.asyncio
    async def test_post_rejected_without_key(self):
        client, chain = _make_test_client(api_config=_build_api_config(api_key="secret123"))
        async with client:
            resp = await client.post("/api/clear-admin", json={"denom": "abc-x"})
            assert resp.status == 401
            assert await resp.json() == {"error": "unauthorized",
                                         "message": "Invalid or missing API key",
                                         "retry_safe": True}
        assert chain.calls == []

    @pytest.mark.asyncio
    async def test_query_param_key_not_accepted(self):
        client, _ = _make_test_client(api_config=_build_api_config(api_key="secret123"))
        async with client:
            resp = await client.post("/api/clear-admin?api_key=secret123",
                                     json={"denom": "abc-x"})
            assert resp.status == 401

    @pytest.mark.asyncio
    async def test_post_allowed_with_header(self):
        client, _ = _make_test_client(api_config=_build_api_config(api_key="secret123"))
        async with client:
            resp = await client.post("/api/clear-admin", json={"denom": "abc-x"},
                                     headers={"X-API-Key": "secret123"})
            assert resp.status == 200


class TestRateLimitAndCors:
    def test_bucket_limits(self):
        bucket = _TokenBucket(2)
        assert bucket.allow("1.1.1.1")
        assert bucket.allow("1.1.1.1")
        assert not bucket.allow("1.1.1.1")
        assert bucket.allow("2.2.2.2")

    def test_bucket_unlimited(self):
        bucket = _TokenBucket(0)
        assert all(bucket.allow("x") for _ in range(500))

    @pytest.mark.asyncio
    async def test_rate_limited_requests(self):
        client, _ = _make_test_client(api_config=_build_api_config(rate_limit_rpm=2))
        async with client:
            assert (await client.get("/health")).status == 200
            assert (await client.get("/health")).status == 200
            resp = await client.get("/health")
            assert resp.status == 429
            assert resp.headers["Retry-After"] == "5"
            body = await resp.json()
        assert body["error"] == "rate_limited"
        assert body["retry_safe"] is True

    @pytest.mark.asyncio
    async def test_cors_listed_origin(self):
        cfg = _build_api_config(cors_origins=["http://localhost:3000"])
        client, _ = _make_test_client(api_config=cfg)
        async with client:
            resp = await client.get("/health", headers={"Origin": "http://localhost:3000"})
            assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
            resp = await client.get("/health", headers={"Origin": "http://evil.example"})
            assert "Access-Control-Allow-Origin" not in resp.headers

    @pytest.mark.asyncio
    async def test_cors_preflight_without_key(self):
        cfg = _build_api_config(cors_origins=["http://localhost:3000"], api_key="k")
        client, _ = _make_test_client(api_config=cfg)
        async with client:
            resp = await client.options("/api/clear-admin",
                                        headers={"Origin": "http://localhost:3000"})
            assert resp.status == 204

    @pytest.mark.asyncio
    async def test_cors_headers_on_unauthorized(self):
        cfg = _build_api_config(cors_origins=["http://localhost:3000"], api_key="k")
        client, _ = _make_test_client(api_config=cfg)
        async with client:
            resp = await client.post("/api/clear-admin", json={"denom": "abc-x"},
                                     headers={"Origin": "http://localhost:3000"})
            assert resp.status == 401
            assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
            assert (await resp.json())["error"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_cors_headers_on_rate_limited(self):
        cfg = _build_api_config(cors_origins=["http://localhost:3000"], rate_limit_rpm=1)
        client, _ = _make_test_client(api_config=cfg)
        origin = {"Origin": "http://localhost:3000"}
        async with client:
            assert (await client.get("/health", headers=origin)).status == 200
            resp = await client.get("/health", headers=origin)
            assert resp.status == 429
            assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_cors_headers_on_unknown_route(self):
        cfg = _build_api_config(cors_origins=["http://localhost:3000"])
        client, _ = _make_test_client(api_config=cfg)
        async with client:
            resp = await client.get("/nope", headers={"Origin": "http://localhost:3000"})
            assert resp.status == 404
            assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_oversized_body(self):
        client, chain = _make_test_client(api_config=_build_api_config(max_body_bytes=64))
        async with client:
            resp = await client.post("/api/clear-admin", json={"denom": "x" * 200})
            assert resp.status == 413
            body = await resp.json()
        assert body["error"] == "payload_too_large"
        assert chain.calls == []

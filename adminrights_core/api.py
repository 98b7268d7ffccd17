"""
REST / HTTP API server for AdminRights.

Built on ``aiohttp``.

Endpoints
---------
GET  /health                  Liveness + configured chain
POST /api/issue-token         Issue a fungible token class (primary signer)
POST /api/transfer-admin      Transfer admin rights (primary signer)
POST /api/clear-admin         Clear admin rights (secondary signer)

Errors are JSON: ``{"error": kind, "message": text, "retry_safe": bool}``.
``retry_safe`` is False whenever the transaction may have been executed
(broadcast transport failure, confirmation timeout).

Security
--------
- API-key authentication on POST endpoints via ``X-API-Key`` header only.
  Timing-safe comparison via ``hmac.compare_digest``.
- Per-IP token-bucket rate limiter (configurable RPM).
- CORS middleware (origins configurable via ``cors_origins``).
- Request body size cap (``max_body_bytes``).

Usage:
    api = APIServer(service, host="127.0.0.1", port=8080, api_config=cfg.api)
    await api.start()    # call inside existing event loop
    ...
    await api.stop()
"""

from __future__ import annotations

import hmac
import json
import logging
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from aiohttp import web

from adminrights_core.errors import (
    AdminRightsError,
    ConfirmationTimeout,
    ConnectionFailure,
    IdentityError,
    NodeInternalError,
    PayloadTooLarge,
    SimulationRejected,
    SubmissionRejected,
    ValidationError,
)

if TYPE_CHECKING:
    from adminrights_core.config import APIConfig
    from adminrights_core.service import AdminRightsService

logger = logging.getLogger("adminrights_api")


# ═══════════════════════════════════════════════════════════════════
#  Error mapping
# ═══════════════════════════════════════════════════════════════════

def status_for(exc: AdminRightsError) -> int:
    """HTTP status for an AdminRights failure."""
    if isinstance(exc, PayloadTooLarge):
        return 413
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, SimulationRejected):
        return 422
    if isinstance(exc, SubmissionRejected):
        return 409 if exc.outcome_known else 502
    if isinstance(exc, ConfirmationTimeout):
        return 504
    if isinstance(exc, (ConnectionFailure, NodeInternalError)):
        return 502
    if isinstance(exc, IdentityError):
        return 500
    return 500


def _error_response(exc: AdminRightsError) -> web.Response:
    return web.json_response(exc.to_dict(), status=status_for(exc))


def _rejection(kind: str, message: str, status: int,
               headers: dict[str, str] | None = None) -> web.Response:
    # Refused before reaching the service, so always safe to retry.
    return web.json_response(
        {"error": kind, "message": message, "retry_safe": True},
        status=status, headers=headers,
    )


async def _read_json_object(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except web.HTTPRequestEntityTooLarge:
        raise PayloadTooLarge("Request body too large") from None
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body") from None
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


# ═══════════════════════════════════════════════════════════════════
#  Rate Limiter (per-IP token bucket)
# ═══════════════════════════════════════════════════════════════════

class _TokenBucket:
    """Simple per-IP token-bucket rate limiter."""

    __slots__ = ("_buckets", "_rpm")

    def __init__(self, rpm: int):
        self._rpm = rpm  # 0 = unlimited
        # ip -> (tokens, last_refill_timestamp)
        self._buckets: dict[str, list[float]] = defaultdict(lambda: [float(rpm), time.monotonic()])

    def allow(self, ip: str) -> bool:
        if self._rpm <= 0:
            return True
        bucket = self._buckets[ip]
        now = time.monotonic()
        elapsed = now - bucket[1]
        bucket[0] = min(float(self._rpm), bucket[0] + elapsed * (self._rpm / 60.0))
        bucket[1] = now
        if bucket[0] >= 1.0:
            bucket[0] -= 1.0
            return True
        return False


# ═══════════════════════════════════════════════════════════════════
#  Middleware factories
# ═══════════════════════════════════════════════════════════════════

def _make_rate_limit_middleware(bucket: _TokenBucket):
    """aiohttp middleware that enforces per-IP rate limits."""

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler):
        ip = request.remote or "unknown"
        if not bucket.allow(ip):
            return _rejection("rate_limited", "Rate limit exceeded. Try again later.",
                              429, headers={"Retry-After": "5"})
        return await handler(request)

    return rate_limit_middleware


def _make_api_key_middleware(api_key: str):
    """aiohttp middleware that requires an API key on POST requests.

    Only the ``X-API-Key`` header is consulted, never query parameters.
    """

    @web.middleware
    async def api_key_middleware(request: web.Request, handler):
        if request.method == "POST":
            key = request.headers.get("X-API-Key", "")
            if not hmac.compare_digest(key, api_key):
                return _rejection("unauthorized", "Invalid or missing API key", 401)
        return await handler(request)

    return api_key_middleware


def _make_cors_middleware(origins: list[str]):
    """aiohttp middleware that adds CORS headers for the listed origins.

    The ``*`` wildcard is not honoured; origins must be listed explicitly.
    """

    allowed = set(origins) if origins else set()
    allowed.discard("*")

    def add_headers(headers, origin: str) -> None:
        if origin in allowed:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            headers["Access-Control-Allow-Headers"] = "Content-Type, X-API-Key"
            headers["Access-Control-Max-Age"] = "3600"

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        origin = request.headers.get("Origin", "")
        if request.method == "OPTIONS":
            resp = web.Response(status=204)
        else:
            try:
                resp = await handler(request)
            except web.HTTPException as exc:
                # router errors (404, 405) are raised rather than returned
                add_headers(exc.headers, origin)
                raise
        add_headers(resp.headers, origin)
        return resp

    return cors_middleware


def build_middlewares(cfg: APIConfig) -> list:
    middlewares: list = []
    # CORS is outermost: preflights skip auth and every rejection carries the headers
    if cfg.cors_origins:
        middlewares.append(_make_cors_middleware(cfg.cors_origins))
    if cfg.rate_limit_rpm > 0:
        middlewares.append(_make_rate_limit_middleware(_TokenBucket(cfg.rate_limit_rpm)))
    if cfg.api_key:
        middlewares.append(_make_api_key_middleware(cfg.api_key))
    return middlewares


class APIServer:
    """Thin aiohttp wrapper around an :class:`AdminRightsService`."""

    def __init__(
        self,
        service: AdminRightsService,
        host: str = "127.0.0.1",
        port: int = 8080,
        *,
        api_config: APIConfig | None = None,
    ):
        self.service = service
        self.host = host
        self.port = port
        self._api_config = api_config
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    # ── lifecycle ────────────────────────────────────────────────

    def build_app(self) -> web.Application:
        middlewares: list = []
        max_body = 65_536
        if self._api_config is not None:
            middlewares = build_middlewares(self._api_config)
            max_body = self._api_config.max_body_bytes
        app = web.Application(middlewares=middlewares, client_max_size=max_body)
        self._register_routes(app)
        self._app = app
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()

    # ── routes ───────────────────────────────────────────────────

    def _register_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self._health)
        app.router.add_post("/api/issue-token", self._issue_token)
        app.router.add_post("/api/transfer-admin", self._transfer_admin)
        app.router.add_post("/api/clear-admin", self._clear_admin)

    # ── handlers ─────────────────────────────────────────────────

    async def _health(self, _request: web.Request) -> web.Response:
        chain = self.service.config.chain
        return web.json_response({
            "ok": True,
            "chain_id": chain.chain_id,
            "endpoint": chain.endpoint,
        })

    async def _run(self, request: web.Request, operation) -> web.Response:
        try:
            body = await _read_json_object(request)
            result = await operation(body)
        except AdminRightsError as exc:
            status = status_for(exc)
            log = logger.error if status >= 500 else logger.warning
            log(f"{request.path} failed ({exc.kind}): {exc.message}")
            return _error_response(exc)
        return web.json_response(result)

    async def _issue_token(self, request: web.Request) -> web.Response:
        """
        POST /api/issue-token
        Body: {"symbol": "ABC", "subunit": "abc", "precision": 6,
               "initial_amount": "1000000", "description": "..."}
        """
        return await self._run(request, self.service.issue_token)

    async def _transfer_admin(self, request: web.Request) -> web.Response:
        """
        POST /api/transfer-admin
        Body: {"denom": "abc-testcore1...", "new_admin": "testcore1..."}
        """
        return await self._run(request, self.service.transfer_admin)

    async def _clear_admin(self, request: web.Request) -> web.Response:
        """
        POST /api/clear-admin
        Body: {"denom": "abc-testcore1..."}
        """
        return await self._run(request, self.service.clear_admin)

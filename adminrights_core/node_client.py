"""
Client for a Cosmos SDK node's REST gateway.

Every session runs over HTTPS with a minimum TLS version enforced in the
client :class:`ssl.SSLContext`; plaintext endpoints are refused outright.
On connect the node's network id is checked against the configured chain
id so a session can never sign for the wrong network.

Endpoints used
--------------
GET  /cosmos/base/tendermint/v1beta1/node_info   network id check
GET  /cosmos/auth/v1beta1/accounts/{address}     account number / sequence
POST /cosmos/tx/v1beta1/simulate                 gas estimation
POST /cosmos/tx/v1beta1/txs                      broadcast (sync mode)
GET  /cosmos/tx/v1beta1/txs/{hash}               inclusion status

Submission is never retried here.  Status queries are read-only, so
:meth:`ChainSession.await_outcome` keeps polling through transient query
failures until its deadline.

Usage::

    async with await connect(endpoint, tls_cfg, "coreum-testnet-1") as session:
        acct = await session.account(address)
        ...
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import aiohttp

from adminrights_core.errors import (
    ConfirmationTimeout,
    ConnectionFailure,
    NodeInternalError,
    SimulationRejected,
    SubmissionRejected,
)

if TYPE_CHECKING:
    from adminrights_core.config import AdminRightsConfig, TLSConfig

logger = logging.getLogger("adminrights_node")

NODE_INFO_PATH = "/cosmos/base/tendermint/v1beta1/node_info"
ACCOUNT_PATH = "/cosmos/auth/v1beta1/accounts/{address}"
SIMULATE_PATH = "/cosmos/tx/v1beta1/simulate"
BROADCAST_PATH = "/cosmos/tx/v1beta1/txs"
TX_PATH = "/cosmos/tx/v1beta1/txs/{tx_hash}"

# gRPC NotFound as surfaced by the gateway
GRPC_NOT_FOUND = 5

MAX_POLL_INTERVAL = 8.0

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ssl.SSLError)


class TxStatus(str, enum.Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass(frozen=True)
class AccountInfo:
    address: str
    account_number: int
    sequence: int


@dataclass(frozen=True)
class SubmissionReceipt:
    tx_hash: str


@dataclass(frozen=True)
class TransactionOutcome:
    """Result of one submission; ``status`` is set exactly once."""
    tx_hash: str
    status: TxStatus
    height: int | None = None
    gas_used: int | None = None
    code: int = 0
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not TxStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status.value,
            "height": self.height,
            "gas_used": self.gas_used,
            "code": self.code,
            "error": self.error,
        }


# =====================================================================
# TLS
# =====================================================================

def build_client_ssl_context(tls: TLSConfig) -> ssl.SSLContext:
    """
    Client context for the node channel: certificate and hostname
    verification on, minimum protocol version from ``tls.min_version``.
    """
    ctx = ssl.create_default_context(cafile=tls.ca_file or None)
    ctx.minimum_version = tls.minimum_version
    return ctx


# =====================================================================
# Session
# =====================================================================

def _error_message(body: dict[str, Any], status: int) -> str:
    return str(body.get("message") or body.get("error") or f"HTTP {status}")


def _is_not_found(status: int, body: dict[str, Any]) -> bool:
    if status == 404 or body.get("code") == GRPC_NOT_FOUND:
        return True
    return "not found" in str(body.get("message", "")).lower()


def _base_account(account: dict[str, Any]) -> dict[str, Any]:
    # Vesting and module accounts wrap the BaseAccount fields.
    if "base_vesting_account" in account:
        account = account["base_vesting_account"]
    if "base_account" in account:
        account = account["base_account"]
    return account


class ChainSession:
    """One open HTTPS channel to a node, bound to a single chain id."""

    def __init__(self, http: aiohttp.ClientSession, endpoint: str, chain_id: str):
        self._http = http
        self.endpoint = endpoint.rstrip("/")
        self.chain_id = chain_id

    async def __aenter__(self) -> ChainSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._http.closed:
            await self._http.close()

    @property
    def closed(self) -> bool:
        return self._http.closed

    # ---- transport ----

    async def _request(self, method: str, path: str,
                       payload: dict | None = None) -> tuple[int, dict[str, Any]]:
        async with self._http.request(method, self.endpoint + path, json=payload) as resp:
            try:
                body = await resp.json(content_type=None)
            except (json.JSONDecodeError, UnicodeDecodeError):
                body = None
            if not isinstance(body, dict):
                body = {}
            return resp.status, body

    # ---- queries ----

    async def verify_network(self) -> None:
        """Raise ConnectionFailure unless the node serves ``chain_id``."""
        try:
            status, body = await self._request("GET", NODE_INFO_PATH)
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionFailure(f"Cannot reach node at {self.endpoint}: {exc}") from exc
        if status != 200:
            raise ConnectionFailure(f"Node info request failed with HTTP {status}")
        network = (body.get("default_node_info") or {}).get("network")
        if network != self.chain_id:
            raise ConnectionFailure(
                f"Node serves network {network!r}, expected {self.chain_id!r}"
            )

    async def account(self, address: str) -> AccountInfo:
        try:
            status, body = await self._request("GET", ACCOUNT_PATH.format(address=address))
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionFailure(f"Account query failed: {exc}") from exc
        if status == 200 and "account" in body:
            acct = _base_account(body["account"])
            return AccountInfo(
                address=address,
                account_number=int(acct.get("account_number", 0)),
                sequence=int(acct.get("sequence", 0)),
            )
        if _is_not_found(status, body):
            raise SimulationRejected(f"Account {address} does not exist on chain")
        if status >= 500:
            raise NodeInternalError(f"Account query failed: {_error_message(body, status)}")
        raise SimulationRejected(f"Account query rejected: {_error_message(body, status)}")

    async def simulate(self, tx_base64: str) -> int:
        """Dry-run an (unsigned) transaction; returns ``gas_used``."""
        try:
            status, body = await self._request("POST", SIMULATE_PATH, {"tx_bytes": tx_base64})
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionFailure(f"Simulation request failed: {exc}") from exc
        if status == 200:
            try:
                return int(body["gas_info"]["gas_used"])
            except (KeyError, TypeError, ValueError) as exc:
                raise NodeInternalError("Malformed simulation response") from exc
        if "message" in body:
            raise SimulationRejected(f"Simulation failed: {body['message']}")
        raise NodeInternalError(f"Simulation failed with HTTP {status}")

    async def submit(self, tx_base64: str) -> SubmissionReceipt:
        """Broadcast a signed transaction once (sync mode: CheckTx result)."""
        try:
            status, body = await self._request(
                "POST", BROADCAST_PATH,
                {"tx_bytes": tx_base64, "mode": "BROADCAST_MODE_SYNC"},
            )
        except _TRANSPORT_ERRORS as exc:
            raise SubmissionRejected(
                f"Broadcast transport failure, outcome unknown: {exc}",
                outcome_known=False,
            ) from exc
        if status != 200:
            raise SubmissionRejected(
                f"Broadcast failed: {_error_message(body, status)}",
                outcome_known=status < 500,
            )
        tx_response = body.get("tx_response") or {}
        tx_hash = tx_response.get("txhash", "")
        code = int(tx_response.get("code", 0))
        if code != 0:
            raise SubmissionRejected(
                f"Node rejected transaction (code {code}): {tx_response.get('raw_log', '')}",
                tx_hash=tx_hash or None,
                code=code,
            )
        if not tx_hash:
            raise NodeInternalError("Broadcast response carried no transaction hash")
        return SubmissionReceipt(tx_hash=tx_hash)

    async def get_tx(self, tx_hash: str) -> TransactionOutcome | None:
        """Inclusion status; ``None`` while the transaction is not in a block."""
        try:
            status, body = await self._request("GET", TX_PATH.format(tx_hash=tx_hash))
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionFailure(f"Status query failed: {exc}") from exc
        if status == 200 and "tx_response" in body:
            resp = body["tx_response"]
            code = int(resp.get("code", 0))
            return TransactionOutcome(
                tx_hash=resp.get("txhash", tx_hash),
                status=TxStatus.COMMITTED if code == 0 else TxStatus.FAILED,
                height=int(resp.get("height", 0)) or None,
                gas_used=int(resp.get("gas_used", 0)) or None,
                code=code,
                error=None if code == 0 else resp.get("raw_log", ""),
            )
        if _is_not_found(status, body):
            return None
        raise NodeInternalError(f"Status query failed: {_error_message(body, status)}")

    async def await_outcome(self, receipt: SubmissionReceipt, timeout: float,
                            poll_interval: float = 1.0) -> TransactionOutcome:
        """
        Block until ``receipt`` reaches a terminal status.

        Polls with exponential backoff (capped at ``MAX_POLL_INTERVAL``).
        Unreachable-node errors are retried until the deadline; a node that
        answers with a server error raises NodeInternalError at once.
        Raises ConfirmationTimeout when ``timeout`` seconds pass first.
        """
        try:
            return await asyncio.wait_for(
                self._poll(receipt.tx_hash, poll_interval), timeout
            )
        except asyncio.TimeoutError:
            raise ConfirmationTimeout(
                f"Transaction {receipt.tx_hash} not confirmed within {timeout:g}s",
                tx_hash=receipt.tx_hash,
            ) from None

    async def _poll(self, tx_hash: str, poll_interval: float) -> TransactionOutcome:
        delay = poll_interval
        while True:
            try:
                outcome = await self.get_tx(tx_hash)
            except ConnectionFailure as exc:
                logger.warning(f"Status query for {tx_hash} failed, retrying: {exc}")
                outcome = None
            if outcome is not None:
                return outcome
            await asyncio.sleep(delay)
            delay = min(delay * 2, MAX_POLL_INTERVAL)


# =====================================================================
# Connect
# =====================================================================

async def connect(
    endpoint: str,
    tls: TLSConfig,
    chain_id: str,
    timeout: float = 10.0,
) -> ChainSession:
    """
    Open a verified session to ``endpoint``.

    Raises ConnectionFailure for non-https endpoints, unreachable nodes,
    TLS handshake failures and network id mismatches.  The underlying HTTP
    session is closed on every failure path.
    """
    if not endpoint.startswith("https://"):
        raise ConnectionFailure(f"Refusing non-TLS endpoint {endpoint!r}")
    try:
        ssl_ctx = build_client_ssl_context(tls)
    except (ssl.SSLError, OSError, ValueError) as exc:
        raise ConnectionFailure(f"Invalid TLS configuration: {exc}") from exc

    http = aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(ssl=ssl_ctx),
        timeout=aiohttp.ClientTimeout(total=timeout),
    )
    session = ChainSession(http, endpoint, chain_id)
    try:
        await session.verify_network()
    except BaseException:
        await session.close()
        raise
    logger.debug(f"Connected to {session.endpoint} ({chain_id})")
    return session


async def connect_from_config(cfg: AdminRightsConfig) -> ChainSession:
    return await connect(
        cfg.chain.endpoint,
        cfg.tls,
        cfg.chain.chain_id,
        timeout=cfg.chain.request_timeout,
    )

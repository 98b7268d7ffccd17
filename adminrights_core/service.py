"""
Administrative operations exposed by the AdminRights server.

Each call:
  1. resolves the signer for the operation (no I/O)
  2. validates the payload into a domain message (no I/O)
  3. opens a node session scoped to the call
  4. runs the message through the orchestrator
  5. closes the session, whatever happened

Signer policy: issuance and admin transfer are signed by the primary
identity; clearing admin rights is signed by the fixed secondary identity.
Callers may pass any identity explicitly to :meth:`AdminRightsService.execute`.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, cast

from adminrights_core.config import AdminRightsConfig
from adminrights_core.errors import InvalidOperation
from adminrights_core.node_client import ChainSession, TransactionOutcome, connect_from_config
from adminrights_core.orchestrator import TransactionOrchestrator
from adminrights_core.transaction import (
    OP_CLEAR_ADMIN,
    OP_ISSUE,
    OP_TRANSFER_ADMIN,
    MsgIssue,
    build_message,
)
from adminrights_core.wallet import SigningIdentity, resolve_identity

logger = logging.getLogger("adminrights_service")

Connector = Callable[[AdminRightsConfig], Awaitable[ChainSession]]

PRIMARY = "primary"
SECONDARY = "secondary"

SIGNER_FOR_OPERATION = {
    OP_ISSUE: PRIMARY,
    OP_TRANSFER_ADMIN: PRIMARY,
    OP_CLEAR_ADMIN: SECONDARY,
}

SUCCESS_MESSAGES = {
    OP_ISSUE: "Fungible token class issued successfully",
    OP_TRANSFER_ADMIN: "Admin rights transferred successfully",
    OP_CLEAR_ADMIN: "Admin rights cleared successfully",
}


class AdminRightsService:
    """Entry point used by the HTTP handlers."""

    def __init__(
        self,
        config: AdminRightsConfig,
        connector: Connector | None = None,
        orchestrator: TransactionOrchestrator | None = None,
    ):
        self.config = config
        self._connect = connector or connect_from_config
        self.orchestrator = orchestrator or TransactionOrchestrator(config)

    # ---- identities ----

    def resolve_signer(self, role: str) -> SigningIdentity:
        """Derive the ``primary`` or ``secondary`` identity afresh."""
        signers = self.config.signers
        phrase = signers.primary_mnemonic if role == PRIMARY else signers.secondary_mnemonic
        return resolve_identity(
            phrase,
            signers.derivation_path,
            signers.key_algorithm,
            address_prefix=self.config.chain.address_prefix,
            coin_type=self.config.chain.coin_type,
            display_name=role,
        )

    # ---- pipeline ----

    async def execute(
        self,
        operation: str,
        payload: Mapping[str, Any],
        identity: SigningIdentity | None = None,
        await_confirmation: bool = True,
    ) -> tuple[TransactionOutcome, Any]:
        """Run one operation end to end; returns ``(outcome, message)``."""
        if operation not in SIGNER_FOR_OPERATION:
            raise InvalidOperation(f"Unsupported operation: {operation!r}")
        if identity is None:
            identity = self.resolve_signer(SIGNER_FOR_OPERATION[operation])
        message = build_message(
            payload, operation, identity.address,
            address_prefix=self.config.chain.address_prefix,
        )

        async with await self._connect(self.config) as session:
            outcome = await self.orchestrator.execute(
                session, identity, message, await_confirmation=await_confirmation,
            )
        return outcome, message

    async def issue_token(self, payload: Mapping[str, Any]) -> dict:
        outcome, message = await self.execute(OP_ISSUE, payload)
        message = cast(MsgIssue, message)
        logger.info(f"New token issued with denom: {message.denom}")
        return {
            "message": SUCCESS_MESSAGES[OP_ISSUE],
            "transaction_id": outcome.tx_hash,
            "denom": message.denom,
            "issuer_address": message.issuer,
        }

    async def transfer_admin(self, payload: Mapping[str, Any]) -> dict:
        outcome, message = await self.execute(OP_TRANSFER_ADMIN, payload)
        logger.info(f"Admin of {message.denom} transferred to {message.account}")
        return {
            "message": SUCCESS_MESSAGES[OP_TRANSFER_ADMIN],
            "transaction_id": outcome.tx_hash,
        }

    async def clear_admin(self, payload: Mapping[str, Any]) -> dict:
        logger.info(f"Attempting to clear admin for denom: {payload.get('denom')}")
        outcome, _message = await self.execute(OP_CLEAR_ADMIN, payload)
        logger.info(f"Admin rights cleared successfully. TxHash: {outcome.tx_hash}")
        return {
            "message": SUCCESS_MESSAGES[OP_CLEAR_ADMIN],
            "transaction_id": outcome.tx_hash,
        }

"""
Transaction orchestration for AdminRights.

:class:`TransactionOrchestrator` drives one domain message through

    BUILT -> SIMULATED -> SIGNED -> SUBMITTED -> {COMMITTED | FAILED | TIMED_OUT}

in a single attempt:

  BUILT       account number / sequence fetched, unsigned draft encoded
  SIMULATED   node dry-run gives gas_used; fee derived from it
  SIGNED      SIGN_MODE_DIRECT signature with the caller's identity
  SUBMITTED   one sync broadcast
  terminal    inclusion observed, or the wait deadline passed

There is no retry loop.  A caller that wants to retry issues a new
:meth:`~TransactionOrchestrator.execute`, which builds a fresh envelope
against fresh account state.

Concurrent ``execute`` calls for the same signer are serialised by a
per-address :class:`asyncio.Lock` held from the account query through the
broadcast, so two calls can never draw the same sequence number.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Protocol

from adminrights_core.envelope import TransactionEnvelope, estimate_fee
from adminrights_core.errors import (
    ConfirmationTimeout,
    IdentityError,
    SubmissionRejected,
    ValidationError,
)
from adminrights_core.node_client import (
    AccountInfo,
    SubmissionReceipt,
    TransactionOutcome,
    TxStatus,
)

if TYPE_CHECKING:
    from adminrights_core.config import AdminRightsConfig
    from adminrights_core.transaction import DomainMessage
    from adminrights_core.wallet import SigningIdentity

logger = logging.getLogger("adminrights_orchestrator")


class TxState(str, enum.Enum):
    BUILT = "built"
    SIMULATED = "simulated"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    COMMITTED = "committed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ChainConnector(Protocol):
    """The node capabilities the orchestrator needs (see ``ChainSession``)."""

    chain_id: str

    async def account(self, address: str) -> AccountInfo: ...

    async def simulate(self, tx_base64: str) -> int: ...

    async def submit(self, tx_base64: str) -> SubmissionReceipt: ...

    async def await_outcome(self, receipt: SubmissionReceipt, timeout: float,
                            poll_interval: float = 1.0) -> TransactionOutcome: ...


class TransactionOrchestrator:
    """Builds, prices, signs, submits and confirms one message per call."""

    def __init__(self, config: AdminRightsConfig):
        self._config = config
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _lock_for(self, address: str) -> asyncio.Lock:
        return self._locks[address]

    @staticmethod
    def _transition(state: TxState, detail: str = "") -> None:
        logger.debug(f"tx -> {state.value} {detail}".rstrip())

    async def execute(
        self,
        session: ChainConnector,
        identity: SigningIdentity,
        message: DomainMessage,
        await_confirmation: bool = True,
        timeout: float | None = None,
    ) -> TransactionOutcome:
        """
        Run ``message`` through the pipeline once, signed by ``identity``.

        Returns a COMMITTED outcome, or PENDING when ``await_confirmation``
        is False.

        Raises
        ------
        ValidationError       message sender is not ``identity``
        ConnectionFailure     node unreachable before broadcast
        SimulationRejected    draft rejected; nothing signed
        SubmissionRejected    broadcast rejected / transport failed /
                              included but failed on chain
        ConfirmationTimeout   no terminal status within ``timeout``
        NodeInternalError     opaque node failure
        """
        if message.sender != identity.address:
            raise ValidationError(
                f"Message sender {message.sender} does not match signer {identity.address}"
            )
        chain = self._config.chain

        async with self._lock_for(identity.address):
            account = await session.account(identity.address)
            draft = TransactionEnvelope.draft(
                [message],
                public_key=identity.public_key,
                account_number=account.account_number,
                sequence=account.sequence,
                chain_id=session.chain_id,
            )
            self._transition(TxState.BUILT,
                             f"{message.type_url} seq={account.sequence}")

            gas_used = await session.simulate(draft.tx_base64)
            fee = estimate_fee(gas_used, chain.gas_adjustment_dec, chain.gas_price_dec,
                               chain.fee_denom)
            self._transition(TxState.SIMULATED,
                             f"gas_used={gas_used} gas_limit={fee.gas_limit}")

            try:
                envelope = draft.with_fee(fee).sign(identity)
            except ValueError as exc:
                raise IdentityError(f"Signing failed for {identity.address}: {exc}") from exc
            self._transition(TxState.SIGNED, envelope.tx_hash)

            receipt = await session.submit(envelope.tx_base64)
            self._transition(TxState.SUBMITTED, receipt.tx_hash)

        logger.info(f"Submitted {message.type_url} from {identity.address}: {receipt.tx_hash}")

        if not await_confirmation:
            return TransactionOutcome(tx_hash=receipt.tx_hash, status=TxStatus.PENDING)

        wait = timeout if timeout is not None else chain.confirm_timeout
        try:
            outcome = await session.await_outcome(receipt, wait, chain.poll_interval)
        except ConfirmationTimeout:
            self._transition(TxState.TIMED_OUT, receipt.tx_hash)
            raise

        if outcome.status is TxStatus.FAILED:
            self._transition(TxState.FAILED, f"code={outcome.code}")
            raise SubmissionRejected(
                f"Transaction {outcome.tx_hash} failed on chain "
                f"(code {outcome.code}): {outcome.error or ''}".rstrip(),
                tx_hash=outcome.tx_hash,
                code=outcome.code,
            )
        self._transition(TxState.COMMITTED, f"height={outcome.height}")
        return outcome

"""
Shared pytest fixtures and fakes for the AdminRights test suite.
"""

from __future__ import annotations

import pytest

from adminrights_core.config import AdminRightsConfig
from adminrights_core.errors import ConfirmationTimeout
from adminrights_core.node_client import (
    AccountInfo,
    SubmissionReceipt,
    TransactionOutcome,
    TxStatus,
)
from adminrights_core.wallet import resolve_identity

# Standard BIP-39 test vectors (valid checksums).
MNEMONIC_A = ("abandon abandon abandon abandon abandon abandon "
              "abandon abandon abandon abandon abandon about")
MNEMONIC_B = ("legal winner thank year wave sausage worth useful "
              "legal winner thank yellow")
MNEMONIC_C = ("letter advice cage absurd amount doctor acoustic avoid "
              "letter advice cage above")

COREUM_PATH = "m/44'/990'/0'/0/0"


def make_identity(mnemonic: str = MNEMONIC_A, name: str = "primary"):
    return resolve_identity(
        mnemonic, COREUM_PATH,
        address_prefix="testcore", coin_type=990, display_name=name,
    )


def make_config(**chain_overrides) -> AdminRightsConfig:
    cfg = AdminRightsConfig()
    cfg.signers.primary_mnemonic = MNEMONIC_A
    cfg.signers.secondary_mnemonic = MNEMONIC_B
    cfg.chain.poll_interval = 0.01
    for key, value in chain_overrides.items():
        setattr(cfg.chain, key, value)
    return cfg


class FakeChain:
    """In-memory stand-in for a ChainSession.

    ``fail`` maps a step name (account / simulate / submit / await) to the
    exception that step raises.  Every call is recorded in ``calls``.
    """

    def __init__(self, chain_id: str = "coreum-testnet-1", *, gas_used: int = 100_000,
                 account_number: int = 7, sequence: int = 3,
                 status: TxStatus = TxStatus.COMMITTED, code: int = 0):
        self.chain_id = chain_id
        self.gas_used = gas_used
        self.account_number = account_number
        self.sequence = sequence
        self.status = status
        self.code = code
        self.fail: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.submitted: list[str] = []
        self.simulated: list[str] = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    def _maybe_fail(self, step: str) -> None:
        self.calls.append(step)
        if step in self.fail:
            raise self.fail[step]

    async def account(self, address: str) -> AccountInfo:
        self._maybe_fail("account")
        return AccountInfo(address, self.account_number, self.sequence)

    async def simulate(self, tx_base64: str) -> int:
        self._maybe_fail("simulate")
        self.simulated.append(tx_base64)
        return self.gas_used

    async def submit(self, tx_base64: str) -> SubmissionReceipt:
        self._maybe_fail("submit")
        self.submitted.append(tx_base64)
        self.sequence += 1
        return SubmissionReceipt(tx_hash=f"HASH{len(self.submitted)}")

    async def await_outcome(self, receipt, timeout, poll_interval=1.0):
        self._maybe_fail("await")
        if timeout <= 0:
            raise ConfirmationTimeout("timed out", tx_hash=receipt.tx_hash)
        return TransactionOutcome(
            tx_hash=receipt.tx_hash,
            status=self.status,
            height=42,
            gas_used=self.gas_used,
            code=self.code,
            error="out of gas" if self.code else None,
        )


def connector_for(chain: FakeChain):
    """A service connector that hands out ``chain``."""
    async def _connect(_cfg):
        return chain
    return _connect


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def identity():
    return make_identity()


@pytest.fixture
def fake_chain():
    return FakeChain()

"""
Transaction envelopes (Cosmos SDK ``TxRaw``) for AdminRights.

An envelope is built once per submission attempt:

    draft = TransactionEnvelope.draft(messages, identity pubkey, account, chain)
    sim_bytes = draft.tx_bytes                 # empty signature, for simulation
    priced = draft.with_fee(estimate_fee(...))
    signed = priced.sign(identity)             # new, immutable object

Signing uses SIGN_MODE_DIRECT: the signature covers
``SignDoc{body_bytes, auth_info_bytes, chain_id, account_number}``.
"""

from __future__ import annotations

import base64
import math
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import TYPE_CHECKING, Sequence

from adminrights_core.codec import (
    bytes_field,
    encode_any,
    message_field,
    repeated_bytes_field,
    string_field,
    uint_field,
)
from adminrights_core.crypto_utils import sha256

if TYPE_CHECKING:
    from adminrights_core.transaction import DomainMessage
    from adminrights_core.wallet import SigningIdentity

SECP256K1_PUBKEY_TYPE = "/cosmos.crypto.secp256k1.PubKey"
SIGN_MODE_DIRECT = 1

# Simulation runs with an unbounded gas meter, so the draft carries no limit.
SIMULATION_GAS_LIMIT = 0


@dataclass(frozen=True)
class Coin:
    denom: str
    amount: int

    def encode(self) -> bytes:
        return string_field(1, self.denom) + string_field(2, str(self.amount))

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


@dataclass(frozen=True)
class Fee:
    gas_limit: int = SIMULATION_GAS_LIMIT
    amount: tuple[Coin, ...] = ()

    def encode(self) -> bytes:
        return (b"".join(message_field(1, c.encode()) for c in self.amount)
                + uint_field(2, self.gas_limit))


def estimate_fee(gas_used: int, gas_adjustment: Decimal, gas_price: Decimal,
                 denom: str) -> Fee:
    """
    Turn a simulated ``gas_used`` into a fee.

    gas_limit = ceil(gas_used * gas_adjustment)
    amount    = ceil(gas_limit * gas_price)

    ``Decimal`` arithmetic only; results are integers.
    """
    if gas_used < 0:
        raise ValueError("gas_used must be non-negative")
    gas_limit = math.ceil(Decimal(gas_used) * gas_adjustment)
    amount = math.ceil(Decimal(gas_limit) * gas_price)
    return Fee(gas_limit=gas_limit, amount=(Coin(denom, amount),))


@dataclass(frozen=True)
class TransactionEnvelope:
    """Immutable transaction bundle; ``sign`` returns a new instance."""

    messages: tuple[DomainMessage, ...]
    public_key: bytes
    account_number: int
    sequence: int
    chain_id: str
    fee: Fee = field(default_factory=Fee)
    memo: str = ""
    signature: bytes = b""

    @classmethod
    def draft(cls, messages: Sequence[DomainMessage], public_key: bytes,
              account_number: int, sequence: int, chain_id: str,
              memo: str = "") -> TransactionEnvelope:
        if not messages:
            raise ValueError("An envelope needs at least one message")
        return cls(tuple(messages), public_key, account_number, sequence,
                   chain_id, memo=memo)

    # ---- encoding ----

    @property
    def body_bytes(self) -> bytes:
        body = b"".join(
            message_field(1, encode_any(m.type_url, m.encode())) for m in self.messages
        )
        return body + string_field(2, self.memo)

    @property
    def auth_info_bytes(self) -> bytes:
        pubkey = encode_any(SECP256K1_PUBKEY_TYPE, bytes_field(1, self.public_key))
        mode_info = message_field(1, uint_field(1, SIGN_MODE_DIRECT))
        signer_info = (message_field(1, pubkey)
                       + message_field(2, mode_info)
                       + uint_field(3, self.sequence))
        return message_field(1, signer_info) + message_field(2, self.fee.encode())

    @property
    def sign_doc_bytes(self) -> bytes:
        return b"".join((
            bytes_field(1, self.body_bytes),
            bytes_field(2, self.auth_info_bytes),
            string_field(3, self.chain_id),
            uint_field(4, self.account_number),
        ))

    @property
    def tx_bytes(self) -> bytes:
        """``TxRaw``; an unsigned envelope carries one empty signature."""
        return b"".join((
            bytes_field(1, self.body_bytes),
            bytes_field(2, self.auth_info_bytes),
            repeated_bytes_field(3, [self.signature]),
        ))

    @property
    def tx_base64(self) -> str:
        return base64.b64encode(self.tx_bytes).decode("ascii")

    @property
    def tx_hash(self) -> str:
        """Ledger transaction hash: upper-case hex SHA-256 of ``TxRaw``."""
        return sha256(self.tx_bytes).hex().upper()

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)

    # ---- transitions ----

    def with_fee(self, fee: Fee) -> TransactionEnvelope:
        if self.is_signed:
            raise ValueError("Cannot change the fee of a signed envelope")
        return replace(self, fee=fee)

    def sign(self, identity: SigningIdentity) -> TransactionEnvelope:
        if self.is_signed:
            raise ValueError("Envelope is already signed")
        if identity.public_key != self.public_key:
            raise ValueError("Identity does not match the envelope signer")
        return replace(self, signature=identity.sign(self.sign_doc_bytes))

"""
Test suite for adminrights_core.envelope: TxRaw construction and signing.

Covers:
  - Fee estimation (Decimal, ceiling)
  - Draft / priced / signed envelope transitions
  - SIGN_MODE_DIRECT signature verification over the SignDoc
  - Wire layout of TxRaw, AuthInfo and SignDoc
"""

import base64
import unittest
from decimal import Decimal

from conftest import MNEMONIC_B, make_identity

from adminrights_core.codec import fields_by_number
from adminrights_core.crypto_utils import sha256, verify
from adminrights_core.envelope import (
    SECP256K1_PUBKEY_TYPE,
    Coin,
    Fee,
    TransactionEnvelope,
    estimate_fee,
)
from adminrights_core.transaction import MsgClearAdmin


class TestEstimateFee(unittest.TestCase):

    def test_exact(self):
        fee = estimate_fee(100_000, Decimal("1.2"), Decimal("0.0625"), "utestcore")
        self.assertEqual(fee.gas_limit, 120_000)
        self.assertEqual(fee.amount, (Coin("utestcore", 7500),))

    def test_rounds_up(self):
        fee = estimate_fee(100_001, Decimal("1.2"), Decimal("0.0625"), "utestcore")
        self.assertEqual(fee.gas_limit, 120_002)
        self.assertEqual(fee.amount[0].amount, 7501)

    def test_zero_gas(self):
        fee = estimate_fee(0, Decimal("1.5"), Decimal("0.1"), "ucore")
        self.assertEqual(fee.gas_limit, 0)
        self.assertEqual(fee.amount[0].amount, 0)

    def test_negative_rejected(self):
        with self.assertRaises(ValueError):
            estimate_fee(-1, Decimal("1"), Decimal("1"), "ucore")

    def test_coin_str(self):
        self.assertEqual(str(Coin("ucore", 12)), "12ucore")


class TestEnvelope(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.identity = make_identity()

    def _draft(self):
        msg = MsgClearAdmin(sender=self.identity.address, denom="abc-x")
        return TransactionEnvelope.draft(
            [msg], public_key=self.identity.public_key,
            account_number=7, sequence=3, chain_id="coreum-testnet-1",
        )

    def test_draft_requires_message(self):
        with self.assertRaises(ValueError):
            TransactionEnvelope.draft([], b"\x02" * 33, 0, 0, "c")

    def test_draft_carries_empty_signature(self):
        draft = self._draft()
        self.assertFalse(draft.is_signed)
        fields = fields_by_number(draft.tx_bytes)
        self.assertEqual(fields[3], [b""])
        self.assertEqual(base64.b64decode(draft.tx_base64), draft.tx_bytes)

    def test_sign_verifies_over_sign_doc(self):
        priced = self._draft().with_fee(Fee(120_000, (Coin("utestcore", 7500),)))
        signed = priced.sign(self.identity)
        self.assertTrue(signed.is_signed)
        self.assertEqual(len(signed.signature), 64)
        self.assertTrue(verify(self.identity.public_key, signed.sign_doc_bytes,
                               signed.signature))
        self.assertEqual(fields_by_number(signed.tx_bytes)[3], [signed.signature])

    def test_sign_returns_new_object(self):
        draft = self._draft()
        signed = draft.sign(self.identity)
        self.assertIsNot(draft, signed)
        self.assertFalse(draft.is_signed)
        self.assertEqual(draft.body_bytes, signed.body_bytes)

    def test_no_double_sign(self):
        signed = self._draft().sign(self.identity)
        with self.assertRaises(ValueError):
            signed.sign(self.identity)

    def test_fee_frozen_after_signing(self):
        signed = self._draft().sign(self.identity)
        with self.assertRaises(ValueError):
            signed.with_fee(Fee(1))

    def test_wrong_identity_rejected(self):
        with self.assertRaises(ValueError):
            self._draft().sign(make_identity(MNEMONIC_B, "other"))

    def test_tx_hash(self):
        signed = self._draft().sign(self.identity)
        self.assertEqual(signed.tx_hash, sha256(signed.tx_bytes).hex().upper())
        self.assertEqual(len(signed.tx_hash), 64)

    def test_sign_doc_layout(self):
        env = self._draft()
        doc = fields_by_number(env.sign_doc_bytes)
        self.assertEqual(doc[1], [env.body_bytes])
        self.assertEqual(doc[2], [env.auth_info_bytes])
        self.assertEqual(doc[3], [b"coreum-testnet-1"])
        self.assertEqual(doc[4], [7])

    def test_auth_info_layout(self):
        env = self._draft().with_fee(Fee(5, (Coin("utestcore", 1),)))
        auth = fields_by_number(env.auth_info_bytes)
        signer = fields_by_number(auth[1][0])
        pubkey_any = fields_by_number(signer[1][0])
        self.assertEqual(pubkey_any[1], [SECP256K1_PUBKEY_TYPE.encode()])
        self.assertEqual(fields_by_number(pubkey_any[2][0])[1], [self.identity.public_key])
        self.assertEqual(signer[3], [3])
        fee = fields_by_number(auth[2][0])
        self.assertEqual(fee[2], [5])

    def test_body_wraps_message_in_any(self):
        env = self._draft()
        body = fields_by_number(env.body_bytes)
        any_msg = fields_by_number(body[1][0])
        self.assertEqual(any_msg[1], [b"/coreum.asset.ft.v1.MsgClearAdmin"])
        self.assertEqual(any_msg[2], [env.messages[0].encode()])


if __name__ == "__main__":
    unittest.main()

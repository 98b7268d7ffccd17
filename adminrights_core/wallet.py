"""
Signing identities for AdminRights.

A signing identity wraps a secp256k1 key-pair derived from a BIP-39
recovery phrase and provides:
  - BIP-39 phrase validation (English word list + checksum)
  - HD derivation (BIP-32 / BIP-44) along a configured path
  - Bech32 account address derivation
  - Deterministic signing of SignDoc bytes

Identities are never persisted and never cached: callers resolve one per
orchestration call and drop it afterwards.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import struct
import unicodedata

from ecdsa import SECP256k1
from eth_account.hdaccount.mnemonic import Mnemonic

from adminrights_core.crypto_utils import derive_address, public_key_from_private, sign
from adminrights_core.errors import DerivationFailure, InvalidSecret

SUPPORTED_KEY_ALGORITHMS = ("secp256k1",)

_PATH_RE = re.compile(r"^m(/\d+'?)+$")


# ===================================================================
#  BIP-39 Mnemonic Support
# ===================================================================

def normalize_mnemonic(mnemonic: str) -> str:
    return " ".join(unicodedata.normalize("NFKD", mnemonic).strip().lower().split())


def validate_mnemonic(mnemonic: str) -> bool:
    """Word count, English word list membership and checksum."""
    words = normalize_mnemonic(mnemonic)
    if len(words.split()) not in (12, 15, 18, 21, 24):
        return False
    return Mnemonic().is_mnemonic_valid(words)


def generate_mnemonic(num_words: int = 24) -> str:
    """Generate a fresh BIP-39 phrase (for provisioning new signers)."""
    return Mnemonic().generate(num_words)


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert a mnemonic phrase to a 64-byte seed (BIP-39)."""
    salt = unicodedata.normalize("NFKD", "mnemonic" + passphrase).encode("utf-8")
    return hashlib.pbkdf2_hmac(
        "sha512", normalize_mnemonic(mnemonic).encode("utf-8"), salt, 2048, dklen=64,
    )


# ===================================================================
#  HD Key Derivation (BIP-32 / BIP-44)
# ===================================================================

def parse_path(path: str) -> list[int]:
    """Parse ``m/44'/990'/0'/0/0`` into BIP-32 child indexes."""
    if not _PATH_RE.match(path or ""):
        raise DerivationFailure(f"Malformed derivation path: {path!r}")
    indexes = []
    for component in path[2:].split("/"):
        hardened = component.endswith("'")
        index = int(component.rstrip("'"))
        if index >= HDNode.HARDENED:
            raise DerivationFailure(f"Path component out of range: {component}")
        indexes.append(index + HDNode.HARDENED if hardened else index)
    return indexes


def check_bip44_path(path: str, coin_type: int) -> list[int]:
    """Require ``m/44'/<coin_type>'/...`` and return the parsed indexes."""
    indexes = parse_path(path)
    if len(indexes) < 2 or indexes[0] != 44 + HDNode.HARDENED:
        raise DerivationFailure(f"Not a BIP-44 path: {path}")
    if indexes[1] != coin_type + HDNode.HARDENED:
        raise DerivationFailure(
            f"Path {path} does not use coin type {coin_type}'"
        )
    return indexes


class HDNode:
    """
    Hierarchical Deterministic key derivation node.

    BIP-32 derivation with HMAC-SHA512 over secp256k1.
    """

    HARDENED = 0x80000000

    def __init__(self, private_key: bytes, chain_code: bytes, depth: int = 0,
                 index: int = 0):
        self.private_key = private_key
        self.chain_code = chain_code
        self.depth = depth
        self.index = index

    @classmethod
    def from_seed(cls, seed: bytes) -> HDNode:
        """Create master node from a 64-byte seed."""
        I = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        cls._check_key(int.from_bytes(I[:32], "big"))
        return cls(private_key=I[:32], chain_code=I[32:])

    @staticmethod
    def _check_key(value: int) -> None:
        if value == 0 or value >= SECP256k1.order:
            raise DerivationFailure("Derived key is outside the curve order")

    def compressed_public_key(self) -> bytes:
        """Get compressed (33-byte) public key."""
        return public_key_from_private(self.private_key)

    def derive_child(self, index: int) -> HDNode:
        """Derive a child node at the given index."""
        if index >= self.HARDENED:
            data = b"\x00" + self.private_key + struct.pack(">I", index)
        else:
            data = self.compressed_public_key() + struct.pack(">I", index)

        I = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        tweak = int.from_bytes(I[:32], "big")
        self._check_key(tweak)
        child_key_int = (tweak + int.from_bytes(self.private_key, "big")) % SECP256k1.order
        self._check_key(child_key_int)

        return HDNode(
            private_key=child_key_int.to_bytes(32, "big"),
            chain_code=I[32:],
            depth=self.depth + 1,
            index=index,
        )

    def derive_path(self, path: str) -> HDNode:
        """Derive from a path string like ``m/44'/990'/0'/0/0``."""
        if path == "m":
            return self
        node = self
        for index in parse_path(path):
            node = node.derive_child(index)
        return node


# ===================================================================
#  Signing identity
# ===================================================================

class SigningIdentity:
    """Address plus key handle able to authorise transactions.

    The private key is only reachable through :meth:`sign`; it is excluded
    from ``repr`` and :meth:`to_dict`.
    """

    __slots__ = ("display_name", "derivation_path", "address", "public_key",
                 "key_algorithm", "_private_key")

    def __init__(self, display_name: str, derivation_path: str, address: str,
                 public_key: bytes, private_key: bytes,
                 key_algorithm: str = "secp256k1"):
        self.display_name = display_name
        self.derivation_path = derivation_path
        self.address = address
        self.public_key = public_key
        self.key_algorithm = key_algorithm
        self._private_key = private_key

    def sign(self, sign_bytes: bytes) -> bytes:
        """Sign SHA-256(``sign_bytes``); 64-byte r||s."""
        return sign(self._private_key, sign_bytes)

    def to_dict(self) -> dict:
        return {
            "display_name": self.display_name,
            "derivation_path": self.derivation_path,
            "address": self.address,
            "public_key": self.public_key.hex(),
            "key_algorithm": self.key_algorithm,
        }

    def __repr__(self) -> str:
        return f"SigningIdentity({self.display_name}, {self.address})"


def resolve_identity(
    secret_phrase: str,
    derivation_path: str,
    key_algorithm: str = "secp256k1",
    *,
    address_prefix: str,
    coin_type: int,
    display_name: str = "signer",
    passphrase: str = "",
) -> SigningIdentity:
    """
    Derive a :class:`SigningIdentity` from a recovery phrase.

    Deterministic and side-effect free: the same phrase, path and prefix
    always give the same address.

    Raises
    ------
    InvalidSecret       phrase is empty or not a valid BIP-39 mnemonic
    DerivationFailure   path/coin-type mismatch or unsupported algorithm
    """
    # Messages must never echo the phrase itself.
    if not secret_phrase or not validate_mnemonic(secret_phrase):
        raise InvalidSecret(f"Recovery phrase for {display_name} is not a valid BIP-39 mnemonic")
    if key_algorithm not in SUPPORTED_KEY_ALGORITHMS:
        raise DerivationFailure(f"Unsupported key algorithm: {key_algorithm}")
    check_bip44_path(derivation_path, coin_type)

    seed = mnemonic_to_seed(secret_phrase, passphrase)
    node = HDNode.from_seed(seed).derive_path(derivation_path)
    public_key = node.compressed_public_key()
    return SigningIdentity(
        display_name=display_name,
        derivation_path=derivation_path,
        address=derive_address(public_key, address_prefix),
        public_key=public_key,
        private_key=node.private_key,
        key_algorithm=key_algorithm,
    )

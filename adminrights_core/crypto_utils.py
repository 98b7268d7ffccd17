"""
Cryptographic helpers for AdminRights.

  - SHA-256 / RIPEMD-160 / Hash160
  - Bech32 encode / decode (BIP-173) for account addresses
  - secp256k1 signing and verification (RFC 6979, low-S, 64-byte r||s)
  - Address derivation from a compressed public key
"""

from __future__ import annotations

import hashlib

from Crypto.Hash import RIPEMD160
from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.errors import MalformedPointError
from ecdsa.util import sigdecode_string, sigencode_string_canonize


# ===================================================================
#  Hashes
# ===================================================================

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def ripemd160(data: bytes) -> bytes:
    # hashlib's ripemd160 depends on the OpenSSL build; pycryptodome always has it
    return RIPEMD160.new(data).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD-160 of SHA-256, the account-id hash used for addresses."""
    return ripemd160(sha256(data))


# ===================================================================
#  Bech32 (BIP-173)
# ===================================================================

BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


def _polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i in range(5):
            chk ^= _GENERATOR[i] if ((top >> i) & 1) else 0
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def convert_bits(data: bytes | list[int], from_bits: int, to_bits: int,
                 pad: bool = True) -> list[int]:
    """Regroup a sequence of ``from_bits``-wide integers into ``to_bits``."""
    acc = 0
    bits = 0
    out: list[int] = []
    maxv = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise ValueError("Invalid value for bit conversion")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        raise ValueError("Invalid padding in bit conversion")
    return out


def bech32_encode(hrp: str, data: list[int]) -> str:
    """Encode 5-bit ``data`` under human-readable part ``hrp``."""
    values = _hrp_expand(hrp) + list(data)
    polymod = _polymod(values + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(BECH32_CHARSET[d] for d in list(data) + checksum)


def bech32_decode(bech: str) -> tuple[str, list[int]]:
    """Decode a bech32 string into ``(hrp, 5-bit data)``.

    Raises ValueError on mixed case, bad characters or checksum.
    """
    if bech.lower() != bech and bech.upper() != bech:
        raise ValueError("Mixed-case bech32 string")
    bech = bech.lower()
    pos = bech.rfind("1")
    if pos < 1 or pos + 7 > len(bech) or len(bech) > 90:
        raise ValueError("Invalid bech32 separator position or length")
    if any(ord(c) < 33 or ord(c) > 126 for c in bech):
        raise ValueError("Invalid character in bech32 string")
    hrp = bech[:pos]
    try:
        data = [BECH32_CHARSET.index(c) for c in bech[pos + 1:]]
    except ValueError:
        raise ValueError("Invalid bech32 data character") from None
    if _polymod(_hrp_expand(hrp) + data) != 1:
        raise ValueError("Invalid bech32 checksum")
    return hrp, data[:-6]


def derive_address(compressed_pubkey: bytes, prefix: str) -> str:
    """Account address: bech32(prefix, Hash160(compressed secp256k1 pubkey))."""
    if len(compressed_pubkey) != 33:
        raise ValueError("Expected a 33-byte compressed public key")
    return bech32_encode(prefix, convert_bits(hash160(compressed_pubkey), 8, 5))


def is_valid_address(address: str, prefix: str | None = None) -> bool:
    """True for a well-formed 20-byte bech32 account address."""
    try:
        hrp, data = bech32_decode(address)
        raw = convert_bits(data, 5, 8, pad=False)
    except ValueError:
        return False
    if prefix is not None and hrp != prefix:
        return False
    return len(raw) == 20


# ===================================================================
#  secp256k1
# ===================================================================

def public_key_from_private(private_key: bytes) -> bytes:
    """Compressed (33-byte) public key for a 32-byte private key."""
    sk = SigningKey.from_string(private_key, curve=SECP256k1)
    return sk.get_verifying_key().to_string("compressed")


def sign(private_key: bytes, message: bytes) -> bytes:
    """Sign SHA-256(``message``); returns a 64-byte low-S r||s signature."""
    sk = SigningKey.from_string(private_key, curve=SECP256k1)
    return sk.sign_deterministic(
        message,
        hashfunc=hashlib.sha256,
        sigencode=sigencode_string_canonize,
    )


def verify(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """Verify a 64-byte r||s signature over SHA-256(``message``)."""
    try:
        vk = VerifyingKey.from_string(public_key, curve=SECP256k1)
        return vk.verify(signature, message, hashfunc=hashlib.sha256,
                         sigdecode=sigdecode_string)
    except (BadSignatureError, MalformedPointError, ValueError):
        return False

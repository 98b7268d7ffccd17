"""
Protobuf wire encoding for the handful of ledger types AdminRights sends.

Only what the transaction path needs is implemented: varints, length-
delimited fields, packed repeated enums and ``google.protobuf.Any``.
Proto3 default values (``""``, ``0``, ``b""``) are omitted, matching
canonical encoders, so SignDoc bytes are identical to what the node
re-derives when verifying the signature.

A small reader (:func:`decode_fields`) is provided for inspecting
encoded transactions in logs and tests.
"""

from __future__ import annotations

from typing import Iterable

WIRE_VARINT = 0
WIRE_LEN = 2


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, pos: int = 0) -> tuple[int, int]:
    """Return ``(value, next_pos)``."""
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("Truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift > 63:
            raise ValueError("Varint too long")


def _key(field: int, wire_type: int) -> bytes:
    return encode_varint((field << 3) | wire_type)


def uint_field(field: int, value: int) -> bytes:
    if not value:
        return b""
    return _key(field, WIRE_VARINT) + encode_varint(value)


def bytes_field(field: int, value: bytes) -> bytes:
    if not value:
        return b""
    return _key(field, WIRE_LEN) + encode_varint(len(value)) + value


def string_field(field: int, value: str) -> bytes:
    return bytes_field(field, value.encode("utf-8"))


def message_field(field: int, value: bytes) -> bytes:
    """Embedded message; emitted even when empty (presence matters)."""
    return _key(field, WIRE_LEN) + encode_varint(len(value)) + value


def repeated_bytes_field(field: int, values: Iterable[bytes]) -> bytes:
    # Repeated bytes keep empty entries (an empty signature is meaningful).
    return b"".join(
        _key(field, WIRE_LEN) + encode_varint(len(v)) + v for v in values
    )


def packed_varints_field(field: int, values: Iterable[int]) -> bytes:
    payload = b"".join(encode_varint(v) for v in values)
    return bytes_field(field, payload)


def encode_any(type_url: str, value: bytes) -> bytes:
    """``google.protobuf.Any{type_url=1, value=2}``."""
    return string_field(1, type_url) + bytes_field(2, value)


def decode_fields(data: bytes) -> list[tuple[int, int, int | bytes]]:
    """
    Split an encoded message into ``(field, wire_type, value)`` triples.

    Varint values are returned as ``int``, length-delimited values as raw
    ``bytes``.  Fixed32/64 wire types are not used by these messages and
    raise ValueError.
    """
    fields: list[tuple[int, int, int | bytes]] = []
    pos = 0
    while pos < len(data):
        key, pos = decode_varint(data, pos)
        field, wire_type = key >> 3, key & 0x07
        if wire_type == WIRE_VARINT:
            value, pos = decode_varint(data, pos)
            fields.append((field, wire_type, value))
        elif wire_type == WIRE_LEN:
            length, pos = decode_varint(data, pos)
            if pos + length > len(data):
                raise ValueError("Truncated length-delimited field")
            fields.append((field, wire_type, data[pos:pos + length]))
            pos += length
        else:
            raise ValueError(f"Unsupported wire type {wire_type}")
    return fields


def fields_by_number(data: bytes) -> dict[int, list[int | bytes]]:
    """Group :func:`decode_fields` output by field number."""
    grouped: dict[int, list[int | bytes]] = {}
    for field, _wire, value in decode_fields(data):
        grouped.setdefault(field, []).append(value)
    return grouped

"""
Domain messages for the Coreum fungible-token (``asset/ft``) module.

Each message knows its protobuf ``type_url``, its wire encoding and the
address that must sign it.  Request records decode the JSON bodies the
HTTP layer receives, and :func:`build_message` maps a validated payload to
exactly one message.

Supported operations:
  issue           -> MsgIssue         (always tagged with the freezing feature)
  transfer_admin  -> MsgTransferAdmin
  clear_admin     -> MsgClearAdmin

Amounts are Python ``int`` end to end; floats are rejected.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping, Union

from adminrights_core.codec import packed_varints_field, string_field, uint_field
from adminrights_core.crypto_utils import is_valid_address
from adminrights_core.errors import (
    InvalidOperation,
    MalformedAmount,
    MissingField,
    ValidationError,
)

MAX_PRECISION = 20
MAX_AMOUNT = 2 ** 256 - 1

OP_ISSUE = "issue"
OP_TRANSFER_ADMIN = "transfer_admin"
OP_CLEAR_ADMIN = "clear_admin"


class Feature(enum.IntEnum):
    """``coreum.asset.ft.v1.Feature``."""
    MINTING = 0
    BURNING = 1
    FREEZING = 2
    WHITELISTING = 3
    IBC = 4
    BLOCK_SMART_CONTRACTS = 5
    CLAWBACK = 6


# Product default: every issued class can be frozen by its admin.
DEFAULT_FEATURES: tuple[Feature, ...] = (Feature.FREEZING,)


def derive_denom(subunit: str, issuer: str) -> str:
    """Canonical denom of a newly issued class: ``<subunit>-<issuer>``."""
    return f"{subunit}-{issuer}"


# ===================================================================
#  Messages
# ===================================================================

@dataclass(frozen=True)
class MsgIssue:
    issuer: str
    symbol: str
    subunit: str
    precision: int
    initial_amount: int
    description: str = ""
    features: tuple[Feature, ...] = DEFAULT_FEATURES

    type_url = "/coreum.asset.ft.v1.MsgIssue"

    @property
    def sender(self) -> str:
        return self.issuer

    @property
    def denom(self) -> str:
        return derive_denom(self.subunit, self.issuer)

    def encode(self) -> bytes:
        return b"".join((
            string_field(1, self.issuer),
            string_field(2, self.symbol),
            string_field(3, self.subunit),
            uint_field(4, self.precision),
            string_field(5, str(self.initial_amount)),
            string_field(6, self.description),
            packed_varints_field(7, [int(f) for f in self.features]),
            # burn_rate / send_commission_rate are non-nullable decimals
            string_field(8, "0"),
            string_field(9, "0"),
        ))

    def to_dict(self) -> dict:
        return {
            "@type": self.type_url,
            "issuer": self.issuer,
            "symbol": self.symbol,
            "subunit": self.subunit,
            "precision": self.precision,
            "initial_amount": str(self.initial_amount),
            "description": self.description,
            "features": [f.name.lower() for f in self.features],
        }


@dataclass(frozen=True)
class MsgTransferAdmin:
    sender: str
    account: str
    denom: str

    type_url = "/coreum.asset.ft.v1.MsgTransferAdmin"

    def encode(self) -> bytes:
        return (string_field(1, self.sender) + string_field(2, self.account)
                + string_field(3, self.denom))

    def to_dict(self) -> dict:
        return {"@type": self.type_url, "sender": self.sender,
                "account": self.account, "denom": self.denom}


@dataclass(frozen=True)
class MsgClearAdmin:
    sender: str
    denom: str

    type_url = "/coreum.asset.ft.v1.MsgClearAdmin"

    def encode(self) -> bytes:
        return string_field(1, self.sender) + string_field(2, self.denom)

    def to_dict(self) -> dict:
        return {"@type": self.type_url, "sender": self.sender, "denom": self.denom}


DomainMessage = Union[MsgIssue, MsgTransferAdmin, MsgClearAdmin]


# ===================================================================
#  Field parsing
# ===================================================================

def _require_str(payload: Mapping[str, Any], name: str) -> str:
    value = payload.get(name)
    if value is None:
        raise MissingField(name)
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    value = value.strip()
    if not value:
        raise MissingField(name)
    return value


def parse_amount(value: Any, name: str = "initial_amount") -> int:
    """Parse a non-negative integer amount given as a decimal string."""
    if isinstance(value, bool) or value is None:
        raise MalformedAmount(f"{name} must be a non-negative integer string")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        amount = int(value.strip())
    else:
        raise MalformedAmount(f"{name} must be a non-negative integer string")
    if amount < 0 or amount > MAX_AMOUNT:
        raise MalformedAmount(f"{name} is out of range")
    return amount


def parse_precision(value: Any) -> int:
    if isinstance(value, bool):
        raise MalformedAmount("precision must be an integer")
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise MalformedAmount("precision must be an integer")
    if not 0 <= value <= MAX_PRECISION:
        raise MalformedAmount(f"precision must be between 0 and {MAX_PRECISION}")
    return value


# ===================================================================
#  Request records
# ===================================================================

@dataclass
class IssueTokenRequest:
    symbol: str
    subunit: str
    precision: int
    initial_amount: int
    description: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> IssueTokenRequest:
        if "precision" not in payload:
            raise MissingField("precision")
        if "initial_amount" not in payload:
            raise MissingField("initial_amount")
        description = payload.get("description") or ""
        if not isinstance(description, str):
            raise ValidationError("description must be a string")
        return cls(
            symbol=_require_str(payload, "symbol"),
            subunit=_require_str(payload, "subunit"),
            precision=parse_precision(payload["precision"]),
            initial_amount=parse_amount(payload["initial_amount"]),
            description=description,
        )


@dataclass
class TransferAdminRequest:
    denom: str
    new_admin: str

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> TransferAdminRequest:
        denom = _require_str(payload, "denom")
        new_admin = _require_str(payload, "new_admin")
        if not is_valid_address(new_admin):
            raise ValidationError("new_admin is not a valid account address")
        return cls(denom=denom, new_admin=new_admin)


@dataclass
class ClearAdminRequest:
    denom: str

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ClearAdminRequest:
        return cls(denom=_require_str(payload, "denom"))


# ===================================================================
#  Builders
# ===================================================================

def create_issue(issuer: str, req: IssueTokenRequest,
                 features: tuple[Feature, ...] = DEFAULT_FEATURES) -> MsgIssue:
    return MsgIssue(
        issuer=issuer,
        symbol=req.symbol,
        subunit=req.subunit,
        precision=req.precision,
        initial_amount=req.initial_amount,
        description=req.description,
        features=features,
    )


def create_transfer_admin(sender: str, req: TransferAdminRequest) -> MsgTransferAdmin:
    return MsgTransferAdmin(sender=sender, account=req.new_admin, denom=req.denom)


def create_clear_admin(sender: str, req: ClearAdminRequest) -> MsgClearAdmin:
    return MsgClearAdmin(sender=sender, denom=req.denom)


_BUILDERS = {
    OP_ISSUE: (IssueTokenRequest, create_issue),
    OP_TRANSFER_ADMIN: (TransferAdminRequest, create_transfer_admin),
    OP_CLEAR_ADMIN: (ClearAdminRequest, create_clear_admin),
}


def build_message(payload: Mapping[str, Any], operation: str, sender: str,
                  address_prefix: str | None = None) -> DomainMessage:
    """
    Validate ``payload`` for ``operation`` and return its domain message.

    ``sender`` is the signing identity's address; any sender/issuer keys in
    the payload are ignored.  With ``address_prefix`` set, a new admin on
    another network is refused.

    Raises MissingField, MalformedAmount, ValidationError or InvalidOperation.
    """
    try:
        request_cls, builder = _BUILDERS[operation]
    except KeyError:
        raise InvalidOperation(f"Unsupported operation: {operation!r}") from None
    if not sender:
        raise MissingField("sender")
    message = builder(sender, request_cls.from_dict(payload))
    if (address_prefix is not None and isinstance(message, MsgTransferAdmin)
            and not is_valid_address(message.account, address_prefix)):
        raise ValidationError(
            f"new_admin must be a {address_prefix} account address"
        )
    return message

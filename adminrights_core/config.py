"""
TOML-based configuration for the AdminRights server.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from adminrights_core.config import load_config
    cfg = load_config("adminrights.toml")
"""

from __future__ import annotations

import os
import ssl
import sys
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]


# Chain constants per Coreum network.
NETWORK_PRESETS: dict[str, dict[str, Any]] = {
    "mainnet": {
        "chain_id": "coreum-mainnet-1",
        "address_prefix": "core",
        "fee_denom": "ucore",
        "endpoint": "https://full-node.mainnet-1.coreum.dev:1317",
    },
    "testnet": {
        "chain_id": "coreum-testnet-1",
        "address_prefix": "testcore",
        "fee_denom": "utestcore",
        "endpoint": "https://full-node.testnet-1.coreum.dev:1317",
    },
    "devnet": {
        "chain_id": "coreum-devnet-1",
        "address_prefix": "devcore",
        "fee_denom": "udevcore",
        "endpoint": "https://full-node.devnet-1.coreum.dev:1317",
    },
}

COREUM_COIN_TYPE = 990

_TLS_VERSIONS = {
    "TLSv1_2": ssl.TLSVersion.TLSv1_2,
    "TLSv1_3": ssl.TLSVersion.TLSv1_3,
}


@dataclass
class ChainConfig:
    """Remote node and fee settings."""
    endpoint: str = NETWORK_PRESETS["testnet"]["endpoint"]
    chain_id: str = "coreum-testnet-1"
    address_prefix: str = "testcore"
    coin_type: int = COREUM_COIN_TYPE
    fee_denom: str = "utestcore"
    gas_price: str = "0.0625"        # decimal string, fee_denom per gas unit
    gas_adjustment: str = "1.2"      # multiplier applied to simulated gas
    request_timeout: float = 10.0
    confirm_timeout: float = 60.0
    poll_interval: float = 1.0

    @property
    def gas_price_dec(self) -> Decimal:
        return _decimal(self.gas_price, "gas_price")

    @property
    def gas_adjustment_dec(self) -> Decimal:
        return _decimal(self.gas_adjustment, "gas_adjustment")


@dataclass
class TLSConfig:
    """Client-side TLS for the node channel.  There is no plaintext mode."""
    min_version: str = "TLSv1_2"
    ca_file: str = ""                 # custom CA bundle (empty = system store)

    @property
    def minimum_version(self) -> ssl.TLSVersion:
        try:
            return _TLS_VERSIONS[self.min_version]
        except KeyError:
            raise ValueError(
                f"tls.min_version must be one of {sorted(_TLS_VERSIONS)}"
            ) from None


@dataclass
class SignerConfig:
    """Recovery phrases for the primary and secondary signers.

    Phrases are excluded from ``repr`` so a logged config never leaks them.
    """
    primary_mnemonic: str = field(default="", repr=False)
    secondary_mnemonic: str = field(default="", repr=False)
    derivation_path: str = f"m/44'/{COREUM_COIN_TYPE}'/0'/0/0"
    key_algorithm: str = "secp256k1"

    def secrets(self) -> list[str]:
        return [s for s in (self.primary_mnemonic, self.secondary_mnemonic) if s]


@dataclass
class APIConfig:
    """REST API settings."""
    host: str = "127.0.0.1"
    port: int = 8080
    api_key: str = field(default="", repr=False)  # require this key on POST endpoints (empty = no auth)
    rate_limit_rpm: int = 60           # max requests per minute per IP (0 = unlimited)
    cors_origins: list[str] = field(default_factory=list)
    max_body_bytes: int = 65_536


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class AdminRightsConfig:
    """Top-level configuration container."""
    chain: ChainConfig = field(default_factory=ChainConfig)
    tls: TLSConfig = field(default_factory=TLSConfig)
    signers: SignerConfig = field(default_factory=SignerConfig)
    api: APIConfig = field(default_factory=APIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _decimal(value: str, name: str) -> Decimal:
    try:
        dec = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal string") from None
    if not dec.is_finite() or dec < 0:
        raise ValueError(f"{name} must be a finite non-negative decimal")
    return dec


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place).

    Only declared fields are set; unknown keys and derived properties are
    skipped.
    """
    names = {f.name for f in fields(dc)}
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if key_under in names:
            setattr(dc, key_under, value)


def apply_network_preset(cfg: AdminRightsConfig, network: str) -> None:
    """Overwrite chain constants with those of a named Coreum network."""
    try:
        preset = NETWORK_PRESETS[network]
    except KeyError:
        raise ValueError(f"Unknown network {network!r}") from None
    _merge(cfg.chain, preset)


def load_config(path: str | None = None) -> AdminRightsConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    A top-level ``network = "mainnet"`` key applies that preset before the
    ``[chain]`` table is merged.

    Env-var mapping:
        ADMINRIGHTS_NETWORK             -> network preset
        ADMINRIGHTS_ENDPOINT            -> chain.endpoint
        ADMINRIGHTS_CHAIN_ID            -> chain.chain_id
        ADMINRIGHTS_PRIMARY_MNEMONIC    -> signers.primary_mnemonic
        ADMINRIGHTS_SECONDARY_MNEMONIC  -> signers.secondary_mnemonic
        ADMINRIGHTS_API_HOST            -> api.host
        ADMINRIGHTS_API_PORT            -> api.port
        ADMINRIGHTS_API_KEY             -> api.api_key
        ADMINRIGHTS_CORS_ORIGINS        -> api.cors_origins (comma-separated)
        ADMINRIGHTS_LOG_LEVEL           -> logging.level
        ADMINRIGHTS_LOG_FMT             -> logging.format
    """
    cfg = AdminRightsConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            if network := data.get("network"):
                apply_network_preset(cfg, network)
            for section_name, section_dc in [
                ("chain", cfg.chain),
                ("tls", cfg.tls),
                ("signers", cfg.signers),
                ("api", cfg.api),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("ADMINRIGHTS_NETWORK"):
        apply_network_preset(cfg, v)
    if v := os.environ.get("ADMINRIGHTS_ENDPOINT"):
        cfg.chain.endpoint = v
    if v := os.environ.get("ADMINRIGHTS_CHAIN_ID"):
        cfg.chain.chain_id = v
    if v := os.environ.get("ADMINRIGHTS_PRIMARY_MNEMONIC"):
        cfg.signers.primary_mnemonic = v
    if v := os.environ.get("ADMINRIGHTS_SECONDARY_MNEMONIC"):
        cfg.signers.secondary_mnemonic = v
    if v := os.environ.get("ADMINRIGHTS_API_HOST"):
        cfg.api.host = v
    if v := os.environ.get("ADMINRIGHTS_API_PORT"):
        cfg.api.port = int(v)
    if v := os.environ.get("ADMINRIGHTS_API_KEY"):
        cfg.api.api_key = v
    if v := os.environ.get("ADMINRIGHTS_CORS_ORIGINS"):
        cfg.api.cors_origins = [o.strip() for o in v.split(",") if o.strip()]
    if v := os.environ.get("ADMINRIGHTS_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("ADMINRIGHTS_LOG_FMT"):
        cfg.logging.format = v

    return cfg


def validate_config(cfg: AdminRightsConfig) -> None:
    """Fail fast on settings the server cannot run without.

    Raises ValueError naming the offending key (never its value).
    """
    if not cfg.signers.primary_mnemonic:
        raise ValueError("signers.primary_mnemonic is required")
    if not cfg.signers.secondary_mnemonic:
        raise ValueError("signers.secondary_mnemonic is required")
    if not cfg.chain.endpoint.startswith("https://"):
        raise ValueError("chain.endpoint must be an https:// URL")
    if not cfg.chain.chain_id:
        raise ValueError("chain.chain_id is required")
    _decimal(cfg.chain.gas_price, "gas_price")
    _decimal(cfg.chain.gas_adjustment, "gas_adjustment")
    if cfg.tls.min_version not in _TLS_VERSIONS:
        raise ValueError(f"tls.min_version must be one of {sorted(_TLS_VERSIONS)}")
    if cfg.chain.confirm_timeout <= 0 or cfg.chain.request_timeout <= 0:
        raise ValueError("chain timeouts must be positive")

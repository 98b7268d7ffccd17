#!/usr/bin/env python3
"""
AdminRights Server Runner: starts the HTTP API that issues Coreum fungible
tokens and manages their admin rights.

Usage:
    python run_server.py --config adminrights.toml --port 8080

    python run_server.py --network testnet \\
                         --endpoint https://full-node.testnet-1.coreum.dev:1317

Environment variables (alternative to flags):
    ADMINRIGHTS_PRIMARY_MNEMONIC, ADMINRIGHTS_SECONDARY_MNEMONIC,
    ADMINRIGHTS_ENDPOINT, ADMINRIGHTS_CHAIN_ID, ADMINRIGHTS_API_PORT
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import sys

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from adminrights_core.api import APIServer  # noqa: E402
from adminrights_core.config import (  # noqa: E402
    AdminRightsConfig,
    apply_network_preset,
    load_config,
    validate_config,
)
from adminrights_core.errors import AdminRightsError  # noqa: E402
from adminrights_core.logging_config import setup_logging  # noqa: E402
from adminrights_core.service import PRIMARY, SECONDARY, AdminRightsService  # noqa: E402

logger = logging.getLogger("adminrights_server")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="AdminRights token admin server")
    p.add_argument("--config", default=os.environ.get("ADMINRIGHTS_CONFIG"),
                   help="Path to a TOML config file")
    p.add_argument("--network", choices=["mainnet", "testnet", "devnet"],
                   help="Apply a Coreum network preset")
    p.add_argument("--host", help="API listen host")
    p.add_argument("--port", type=int, help="API listen port")
    p.add_argument("--endpoint", help="Node REST endpoint (https://...)")
    p.add_argument("--chain-id", help="Expected chain id of the node")
    p.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return p.parse_args(argv)


def apply_cli_overrides(cfg: AdminRightsConfig, args: argparse.Namespace) -> None:
    """CLI flags override config file and environment."""
    if args.network:
        apply_network_preset(cfg, args.network)
    if args.endpoint:
        cfg.chain.endpoint = args.endpoint
    if args.chain_id:
        cfg.chain.chain_id = args.chain_id
    if args.host:
        cfg.api.host = args.host
    if args.port:
        cfg.api.port = args.port
    if args.log_level:
        cfg.logging.level = args.log_level.upper()


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    cfg = load_config(args.config)
    apply_cli_overrides(cfg, args)

    setup_logging(
        level=cfg.logging.level,
        fmt=cfg.logging.format,
        log_file=cfg.logging.file,
        secrets=cfg.signers.secrets(),
    )

    try:
        validate_config(cfg)
    except ValueError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 2

    service = AdminRightsService(cfg)

    # Derive both signers once up front so a bad phrase fails at startup
    try:
        for role in (PRIMARY, SECONDARY):
            identity = service.resolve_signer(role)
            logger.info(f"{role} signer: {identity.address}")
    except AdminRightsError as exc:
        logger.error(f"Signer setup failed: {exc.message}")
        return 2

    api = APIServer(service, host=cfg.api.host, port=cfg.api.port, api_config=cfg.api)
    await api.start()
    logger.info(f"Serving chain {cfg.chain.chain_id} via {cfg.chain.endpoint}")

    try:
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        await api.stop()
    return 0


def main_sync():
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    main_sync()

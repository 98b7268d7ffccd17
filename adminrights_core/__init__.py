"""
AdminRights - HTTP service for Coreum fungible-token administration.

Key features:
- Issue fungible token classes (freezing enabled)
- Transfer or clear a token's admin rights
- BIP-39 / BIP-32 secp256k1 signing identities derived on demand
- Simulate -> fee -> sign -> submit -> confirm pipeline over TLS
- Typed errors that say whether a retry is safe
"""

__version__ = "0.1.0"
__all__ = [
    "errors",
    "crypto_utils",
    "codec",
    "wallet",
    "transaction",
    "envelope",
    "node_client",
    "orchestrator",
    "service",
    "config",
    "logging_config",
    "api",
]

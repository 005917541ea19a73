"""
Mutual TLS client - build mTLS-capable HTTP clients from PEM or PKCS#12 material.

This package parses CA bundles, PKCS8 client keys and client certificate
chains (or a PKCS#12 keystore), assembles an in-memory credential store, and
derives the trust and key material for a client SSL context.
"""

__version__ = "0.1.0"

from .builder import MutualTlsClient, MutualTlsClientBuilder, build_client
from .config import MutualTlsConfig, load_config

__all__ = [
    "MutualTlsClient",
    "MutualTlsClientBuilder",
    "MutualTlsConfig",
    "build_client",
    "load_config",
]

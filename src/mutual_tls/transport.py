"""
Transports built on top of derived TLS material.

httpx_transport wraps an SSL context into an httpx client. gRPC does not take
an SSL context, so grpc_channel_credentials builds its credentials from the
same trust and key material instead.
"""

import ssl
from typing import Any, Callable, Optional

import grpc
import httpx

from .managers import KeyMaterial, TrustMaterial

TransportFactory = Callable[[ssl.SSLContext, TrustMaterial], Any]

DEFAULT_TIMEOUT = 30.0


def httpx_transport(ssl_context: ssl.SSLContext, trust_material: TrustMaterial) -> httpx.Client:
    """Wrap an SSL context into an httpx client.

    Args:
        ssl_context: Client SSL context presenting the client certificate
        trust_material: CA set the context validates servers against

    Returns:
        An httpx client verifying servers with ssl_context
    """
    return httpx.Client(verify=ssl_context, timeout=DEFAULT_TIMEOUT)


def grpc_channel_credentials(
    key_material: Optional[KeyMaterial],
    trust_material: TrustMaterial,
) -> grpc.ChannelCredentials:
    """Create gRPC channel credentials from trust and key material."""
    if key_material is None:
        return grpc.ssl_channel_credentials(root_certificates=trust_material.to_pem())
    return grpc.ssl_channel_credentials(
        root_certificates=trust_material.to_pem(),
        private_key=key_material.private_key_pem(),
        certificate_chain=key_material.chain_pem(),
    )


def grpc_target(url: str) -> str:
    """Turn an https:// URL into a gRPC host:port target."""
    if url.startswith("https://"):
        url = url[8:]
    elif url.startswith("http://"):
        url = url[7:]
    return url.rstrip("/")

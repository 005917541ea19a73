"""Shared pytest fixtures for mutual-tls-client tests.

Every test gets a throwaway PKI generated with cryptography: a root CA, an
intermediate CA, a server certificate for localhost, and RSA and EC client
certificates. Nothing touches the network.
"""

from dataclasses import dataclass
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID

from tests.helpers import (
    KEYSTORE_PASSWORD,
    cert_to_pem,
    generate_ec_key,
    generate_rsa_key,
    issue_certificate,
    key_to_pem,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")


@dataclass
class Pki:
    """A complete throwaway PKI."""
    ca_key: rsa.RSAPrivateKey
    ca_cert: x509.Certificate
    other_ca_key: rsa.RSAPrivateKey
    other_ca_cert: x509.Certificate
    intermediate_key: rsa.RSAPrivateKey
    intermediate_cert: x509.Certificate
    server_key: rsa.RSAPrivateKey
    server_cert: x509.Certificate
    client_key: rsa.RSAPrivateKey
    client_cert: x509.Certificate
    ec_client_key: ec.EllipticCurvePrivateKey
    ec_client_cert: x509.Certificate


@pytest.fixture(scope="session")
def pki() -> Pki:
    """Generate the PKI once per test session."""
    ca_key = generate_rsa_key()
    ca_cert = issue_certificate("Test Root CA", ca_key, ca=True)

    other_ca_key = generate_rsa_key()
    other_ca_cert = issue_certificate("Other Root CA", other_ca_key, ca=True)

    intermediate_key = generate_rsa_key()
    intermediate_cert = issue_certificate(
        "Test Intermediate CA", intermediate_key, ca_cert, ca_key, ca=True
    )

    server_key = generate_rsa_key()
    server_cert = issue_certificate(
        "localhost",
        server_key,
        intermediate_cert,
        intermediate_key,
        san_dns=["localhost"],
        usage=ExtendedKeyUsageOID.SERVER_AUTH,
    )

    client_key = generate_rsa_key()
    client_cert = issue_certificate(
        "api_client",
        client_key,
        ca_cert,
        ca_key,
        san_dns=["api-client.test"],
        usage=ExtendedKeyUsageOID.CLIENT_AUTH,
    )

    ec_client_key = generate_ec_key()
    ec_client_cert = issue_certificate(
        "ec_client",
        ec_client_key,
        ca_cert,
        ca_key,
        san_dns=["ec-client.test"],
        usage=ExtendedKeyUsageOID.CLIENT_AUTH,
    )

    return Pki(
        ca_key=ca_key,
        ca_cert=ca_cert,
        other_ca_key=other_ca_key,
        other_ca_cert=other_ca_cert,
        intermediate_key=intermediate_key,
        intermediate_cert=intermediate_cert,
        server_key=server_key,
        server_cert=server_cert,
        client_key=client_key,
        client_cert=client_cert,
        ec_client_key=ec_client_key,
        ec_client_cert=ec_client_cert,
    )


@dataclass
class PkiFiles:
    """Paths of the PKI written to disk."""
    ca: Path
    client_key: Path
    client_cert: Path
    ec_client_key: Path
    ec_client_cert: Path
    keystore: Path
    root: Path


@pytest.fixture
def pki_files(tmp_path: Path, pki: Pki) -> PkiFiles:
    """Write the PKI as PEM and PKCS#12 files into an isolated directory.

    ca.crt holds both root CAs. client.p12 holds the RSA client key and
    certificate plus the root CA as a trusted certificate.
    """
    certs_dir = tmp_path / "certs"
    certs_dir.mkdir()

    files = PkiFiles(
        ca=certs_dir / "ca.crt",
        client_key=certs_dir / "client.pk8",
        client_cert=certs_dir / "client.crt",
        ec_client_key=certs_dir / "ec_client.pk8",
        ec_client_cert=certs_dir / "ec_client.crt",
        keystore=certs_dir / "client.p12",
        root=certs_dir,
    )
    files.ca.write_bytes(cert_to_pem(pki.ca_cert) + cert_to_pem(pki.other_ca_cert))
    files.client_key.write_bytes(key_to_pem(pki.client_key))
    files.client_cert.write_bytes(cert_to_pem(pki.client_cert))
    files.ec_client_key.write_bytes(key_to_pem(pki.ec_client_key))
    files.ec_client_cert.write_bytes(cert_to_pem(pki.ec_client_cert))
    files.keystore.write_bytes(
        pkcs12.serialize_key_and_certificates(
            name=b"client",
            key=pki.client_key,
            cert=pki.client_cert,
            cas=[pki.ca_cert],
            encryption_algorithm=serialization.BestAvailableEncryption(KEYSTORE_PASSWORD.encode()),
        )
    )
    return files


@pytest.fixture
def clean_env(monkeypatch):
    """Provide a clean environment without MTLS_* config vars."""
    env_vars = [
        "MTLS_CONFIG_PATH",
        "MTLS_CA",
        "MTLS_CLIENT_KEY",
        "MTLS_CLIENT_CERT",
        "MTLS_KEYSTORE",
        "MTLS_KEYSTORE_PASSWORD",
        "MTLS_KEY_ALGORITHM",
        "MTLS_KEY_PASSWORD",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

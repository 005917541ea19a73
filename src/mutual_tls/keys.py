"""
PKCS8 private key decoding.

The key algorithm is read from the PKCS8 AlgorithmIdentifier rather than
assumed, and each algorithm OID maps to a KeyDecoder. Callers may pin the
algorithm they expect; a key of any other algorithm is rejected.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa

from . import pem
from .error_handling import KeyDecodeError

logger = logging.getLogger(__name__)

PrivateKey = Union[
    rsa.RSAPrivateKey,
    ec.EllipticCurvePrivateKey,
    dsa.DSAPrivateKey,
    ed25519.Ed25519PrivateKey,
    ed448.Ed448PrivateKey,
]

_SEQUENCE = 0x30
_INTEGER = 0x02
_OID = 0x06


@dataclass(frozen=True)
class KeyDecoder:
    """Decoder for one private key algorithm.

    Attributes:
        name: Algorithm name used for configuration (e.g., "RSA")
        key_types: Private key classes this algorithm produces
    """
    name: str
    key_types: tuple

    def decode(self, der: bytes, password: Optional[bytes] = None) -> PrivateKey:
        """Build a private key from PKCS8 DER bytes.

        Raises:
            KeyDecodeError: If the DER is malformed or holds another algorithm
        """
        try:
            key = serialization.load_der_private_key(der, password=password)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyDecodeError(f"Invalid {self.name} private key: {e}") from e
        if not isinstance(key, self.key_types):
            raise KeyDecodeError(
                f"Expected a {self.name} private key, got {type(key).__name__}"
            )
        return key


KEY_DECODERS: dict[str, KeyDecoder] = {
    "1.2.840.113549.1.1.1": KeyDecoder("RSA", (rsa.RSAPrivateKey,)),
    "1.2.840.10045.2.1": KeyDecoder("EC", (ec.EllipticCurvePrivateKey,)),
    "1.2.840.10040.4.1": KeyDecoder("DSA", (dsa.DSAPrivateKey,)),
    "1.3.101.112": KeyDecoder("Ed25519", (ed25519.Ed25519PrivateKey,)),
    "1.3.101.113": KeyDecoder("Ed448", (ed448.Ed448PrivateKey,)),
}


def register_key_decoder(oid: str, decoder: KeyDecoder) -> None:
    """Register a decoder for an additional key algorithm OID."""
    KEY_DECODERS[oid] = decoder


def read_private_key(
    stream: BinaryIO,
    algorithm: Optional[str] = None,
    password: Optional[str] = None,
    source: str = "<stream>",
) -> PrivateKey:
    """Read a PEM-armored PKCS8 private key from a stream.

    Args:
        stream: Binary stream holding the PEM key
        algorithm: Expected algorithm name; None accepts any registered one
        password: Password for an ENCRYPTED PRIVATE KEY
        source: Name of the stream for error messages

    Returns:
        The private key

    Raises:
        KeyDecodeError: On malformed Base64, malformed DER or unsupported algorithm
    """
    try:
        text = stream.read().decode("utf-8")
    except UnicodeDecodeError as e:
        raise KeyDecodeError(f"Private key in {source} is not PEM text: {e}") from e
    return decode_private_key(text, algorithm=algorithm, password=password, source=source)


def decode_private_key(
    text: str,
    algorithm: Optional[str] = None,
    password: Optional[str] = None,
    source: str = "<text>",
) -> PrivateKey:
    """Decode a PEM-armored PKCS8 private key.

    Raises:
        KeyDecodeError: On malformed Base64, malformed DER or unsupported algorithm
    """
    try:
        der = pem.decode_body(text)
    except ValueError as e:
        raise KeyDecodeError(f"Invalid Base64 in private key {source}: {e}") from e
    if not der:
        raise KeyDecodeError(f"No private key material in {source}")

    if is_encrypted_pkcs8(der):
        if password is None:
            raise KeyDecodeError(f"Private key in {source} is encrypted and no key password is set")
        key = _decode_encrypted(der, password.encode("utf-8"), source)
        decoder = decoder_for_key(key)
    else:
        oid = pkcs8_algorithm_oid(der)
        decoder = KEY_DECODERS.get(oid)
        if decoder is None:
            raise KeyDecodeError(f"Unsupported private key algorithm {oid} in {source}")
        key = decoder.decode(der)

    if algorithm and decoder.name.lower() != algorithm.lower():
        raise KeyDecodeError(
            f"Private key in {source} is {decoder.name}, but {algorithm} was configured"
        )

    logger.debug("Decoded %s private key from %s", decoder.name, source)
    return key


def decoder_for_key(key) -> KeyDecoder:
    """Find the registered decoder matching a key object.

    Raises:
        KeyDecodeError: If no registered algorithm produces this key type
    """
    for decoder in KEY_DECODERS.values():
        if isinstance(key, decoder.key_types):
            return decoder
    raise KeyDecodeError(f"Unsupported private key type {type(key).__name__}")


def key_algorithm(key) -> str:
    """Get the algorithm name of a private key (e.g., "RSA")."""
    return decoder_for_key(key).name


def is_encrypted_pkcs8(der: bytes) -> bool:
    """Tell EncryptedPrivateKeyInfo apart from PrivateKeyInfo.

    PrivateKeyInfo starts with an INTEGER version, EncryptedPrivateKeyInfo
    with an AlgorithmIdentifier SEQUENCE.
    """
    try:
        _, start, _ = _read_tlv(der, 0, _SEQUENCE)
        tag, _, _ = _read_tlv(der, start)
    except KeyDecodeError:
        return False
    return tag == _SEQUENCE


def pkcs8_algorithm_oid(der: bytes) -> str:
    """Read the algorithm OID from a PKCS8 PrivateKeyInfo.

    PrivateKeyInfo ::= SEQUENCE {
        version             INTEGER,
        privateKeyAlgorithm AlgorithmIdentifier,
        privateKey          OCTET STRING, ... }

    Raises:
        KeyDecodeError: If the DER is not a PrivateKeyInfo
    """
    _, offset, _ = _read_tlv(der, 0, _SEQUENCE)
    _, _, offset = _read_tlv(der, offset, _INTEGER)
    _, offset, _ = _read_tlv(der, offset, _SEQUENCE)
    _, start, end = _read_tlv(der, offset, _OID)
    return _decode_oid(der[start:end])


def _decode_encrypted(der: bytes, password: bytes, source: str) -> PrivateKey:
    try:
        return serialization.load_der_private_key(der, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyDecodeError(f"Cannot decrypt private key in {source}: {e}") from e


def _read_tlv(data: bytes, offset: int, expected_tag: Optional[int] = None) -> tuple[int, int, int]:
    """Read one DER tag-length-value header.

    Returns:
        Tuple of (tag, value start offset, value end offset)
    """
    if offset + 2 > len(data):
        raise KeyDecodeError("Malformed PKCS8 DER: truncated")
    tag = data[offset]
    if expected_tag is not None and tag != expected_tag:
        raise KeyDecodeError(
            f"Malformed PKCS8 DER: expected tag 0x{expected_tag:02x}, got 0x{tag:02x}"
        )
    first = data[offset + 1]
    start = offset + 2
    if first < 0x80:
        length = first
    else:
        count = first & 0x7F
        if count == 0 or count > 4 or start + count > len(data):
            raise KeyDecodeError("Malformed PKCS8 DER: bad length")
        length = int.from_bytes(data[start:start + count], "big")
        start += count
    end = start + length
    if end > len(data):
        raise KeyDecodeError("Malformed PKCS8 DER: truncated")
    return tag, start, end


def _decode_oid(value: bytes) -> str:
    if not value:
        raise KeyDecodeError("Malformed PKCS8 DER: empty algorithm OID")
    arcs = [value[0] // 40, value[0] % 40] if value[0] < 80 else [2, value[0] - 80]
    current = 0
    for byte in value[1:]:
        current = (current << 7) | (byte & 0x7F)
        if not byte & 0x80:
            arcs.append(current)
            current = 0
    return ".".join(str(arc) for arc in arcs)

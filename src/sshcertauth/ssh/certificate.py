"""
X.509 certificate key extraction.

The certificate has already been verified by the TLS terminator; this module
only pulls the RSA public numbers out of it.
"""

import logging
from typing import Union

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from ..errors import EncodingError
from .key_encoder import PublicKeyMaterial

logger = logging.getLogger(__name__)


def _int_to_bytes(value: int) -> bytes:
    return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")


def load_certificate(pem: Union[str, bytes]) -> x509.Certificate:
    """
    Load a PEM encoded certificate.

    Raises:
        EncodingError: if the data is not a PEM certificate
    """
    if isinstance(pem, str):
        pem = pem.encode("ascii", errors="replace")

    if not pem.strip():
        raise EncodingError("Empty client certificate")

    try:
        return x509.load_pem_x509_certificate(pem)
    except ValueError as e:
        raise EncodingError(f"Can't extract pubkey from the certificate: {e}") from e


def extract_public_key(pem: Union[str, bytes]) -> PublicKeyMaterial:
    """
    Extract RSA modulus and exponent from a PEM certificate.

    Raises:
        EncodingError: if the certificate is unreadable or its key is not RSA
    """
    cert = load_certificate(pem)
    public_key = cert.public_key()

    if not isinstance(public_key, RSAPublicKey):
        raise EncodingError(f"Public key is not a RSA key ({type(public_key).__name__})")

    numbers = public_key.public_numbers()
    logger.debug(f"Extracted {public_key.key_size}-bit RSA key from {cert.subject.rfc4514_string()}")
    return PublicKeyMaterial(
        modulus=_int_to_bytes(numbers.n),
        exponent=_int_to_bytes(numbers.e),
    )


def subject_of(pem: Union[str, bytes]) -> str:
    """RFC4514 subject string of a PEM certificate."""
    return load_certificate(pem).subject.rfc4514_string()

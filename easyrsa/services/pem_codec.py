"""
PEM encoding helpers. Artifacts are written with CRLF line endings.
"""
from typing import Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from ..errors import ConfigError

PemInput = Union[str, bytes]


def to_crlf(pem: bytes) -> bytes:
    """Normalize PEM line endings to CRLF."""
    return pem.replace(b"\r\n", b"\n").replace(b"\n", b"\r\n")


def _as_bytes(pem: PemInput) -> bytes:
    if isinstance(pem, str):
        return pem.encode("ascii")
    return bytes(pem)


def _to_lf(pem: PemInput) -> bytes:
    return _as_bytes(pem).replace(b"\r\n", b"\n")


def private_key_to_pem(private_key) -> bytes:
    """Encode a private key as unencrypted PKCS#1 (BEGIN RSA PRIVATE KEY)."""
    return to_crlf(private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption()
    ))


def private_key_from_pem(pem: PemInput):
    """
    Decode an unencrypted PEM private key.

    Raises:
        ConfigError: If the PEM cannot be decoded
    """
    try:
        return serialization.load_pem_private_key(_to_lf(pem), password=None)
    except (ValueError, TypeError, UnicodeEncodeError) as e:
        raise ConfigError(f"Invalid PEM private key: {e}")


def certificate_to_pem(cert: x509.Certificate) -> bytes:
    return to_crlf(cert.public_bytes(serialization.Encoding.PEM))


def certificate_from_pem(pem: PemInput) -> x509.Certificate:
    return x509.load_pem_x509_certificate(_to_lf(pem))


def csr_to_pem(csr: x509.CertificateSigningRequest) -> bytes:
    return to_crlf(csr.public_bytes(serialization.Encoding.PEM))


def csr_from_pem(pem: PemInput) -> x509.CertificateSigningRequest:
    return x509.load_pem_x509_csr(_to_lf(pem))

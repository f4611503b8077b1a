"""
Key, request and certificate factory.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..errors import ConfigError, SigningError
from ..models.artifacts import KeyPair, UnsignedCertificate
from ..models.identity import Identity
from . import pem_codec
from .attribute_builder import build_subject


class CertificateFactory:
    """Produces RSA key pairs, CSRs and certificates, and signs certificates."""

    def __init__(self, key_size: int = 2048, digest: hashes.HashAlgorithm = None):
        self.key_size = key_size
        self.digest = digest or hashes.SHA256()
        self.logger = logging.getLogger(__name__)

    def generate_key_pair(self, bits: Optional[int] = None) -> KeyPair:
        """Generate a fresh RSA key pair."""
        bits = bits or self.key_size
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
        self.logger.debug(f"Generated {bits}-bit RSA key pair")
        return KeyPair(private_key=private_key, pem=pem_codec.private_key_to_pem(private_key))

    def load_key_pair(self, pem: pem_codec.PemInput) -> KeyPair:
        """
        Reuse an existing PEM private key without re-encoding it.

        Raises:
            ConfigError: If the key cannot be decoded or is not an RSA key
        """
        private_key = pem_codec.private_key_from_pem(pem)
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise ConfigError("Only RSA private keys are supported")
        raw = pem.encode("ascii") if isinstance(pem, str) else bytes(pem)
        return KeyPair(private_key=private_key, pem=raw)

    def build_csr(self, identity: Identity, key_pair: KeyPair) -> x509.CertificateSigningRequest:
        """
        Build a CSR for the identity, signed with its own key.

        Raises:
            ConfigError: If an attribute value is not valid for its field
            SigningError: If signing the request fails
        """
        subject = build_subject(identity)
        try:
            return x509.CertificateSigningRequestBuilder().subject_name(
                subject
            ).sign(key_pair.private_key, self.digest)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningError(f"Failed to sign certificate request for {identity.common_name}: {e}")

    def build_certificate(self, subject: x509.Name, issuer: x509.Name, public_key,
                          serial_number: int,
                          extensions: List[Tuple[x509.ExtensionType, bool]],
                          validity_days: int,
                          now: Optional[datetime] = None) -> UnsignedCertificate:
        """Assemble certificate fields without signing."""
        if serial_number <= 0:
            raise ConfigError("Certificate serial number must be positive")

        now = now or datetime.now(timezone.utc)
        return UnsignedCertificate(
            subject=subject,
            issuer=issuer,
            public_key=public_key,
            serial_number=serial_number,
            not_valid_before=now,
            not_valid_after=now + timedelta(days=validity_days),
            extensions=list(extensions)
        )

    def sign_certificate(self, certificate: UnsignedCertificate, signing_key: rsa.RSAPrivateKey,
                         issuer_certificate: Optional[x509.Certificate] = None) -> x509.Certificate:
        """
        Sign assembled certificate fields.

        Without an issuer certificate the certificate must be self-issued and
        the signing key must match its own public key. With one, the declared
        issuer must equal the issuer certificate's subject and the signing key
        must match the issuer certificate's public key.

        Raises:
            SigningError: If the issuer material is inconsistent or signing fails
        """
        if issuer_certificate is None:
            if not certificate.is_self_issued:
                raise SigningError("Issuer certificate required to sign a certificate for another subject")
            expected_public_key = certificate.public_key
        else:
            if certificate.issuer != issuer_certificate.subject:
                raise SigningError("Certificate issuer does not match the issuing certificate subject")
            expected_public_key = issuer_certificate.public_key()

        if _public_key_bytes(signing_key.public_key()) != _public_key_bytes(expected_public_key):
            raise SigningError("Signing key does not match the declared issuer")

        builder = x509.CertificateBuilder().subject_name(
            certificate.subject
        ).issuer_name(
            certificate.issuer
        ).public_key(
            certificate.public_key
        ).serial_number(
            certificate.serial_number
        ).not_valid_before(
            certificate.not_valid_before
        ).not_valid_after(
            certificate.not_valid_after
        )
        try:
            for extension, critical in certificate.extensions:
                builder = builder.add_extension(extension, critical=critical)
            return builder.sign(signing_key, self.digest)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningError(f"Failed to sign certificate: {e}")


def _public_key_bytes(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )

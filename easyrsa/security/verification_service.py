"""
Verification service for certificate chains issued by a local CA.
"""
import logging
from typing import List, Optional, Sequence
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from datetime import datetime, timezone

from .models import VerificationResult, CertificateInfo


class VerificationService:
    """Service for validating certificate chains against trusted CA certificates."""

    def __init__(self, trusted_certs: Sequence[x509.Certificate]):
        """Initialize the verification service with the trusted certificates."""
        self.trusted_certs: List[x509.Certificate] = list(trusted_certs)
        self.logger = logging.getLogger(__name__)

    def verify_chain(self, chain: Sequence[x509.Certificate],
                     now: Optional[datetime] = None) -> VerificationResult:
        """
        Verify a chain ordered leaf first.

        Every certificate must be directly issued by the next one in the chain,
        or by a trusted certificate once the chain is exhausted. Issuers must be
        CA certificates and every certificate must be inside its validity window.
        """
        if not chain:
            return VerificationResult(is_valid=False, depth=0, error_message="Empty certificate chain")

        now = now or datetime.now(timezone.utc)
        leaf_subject = chain[0].subject.rfc4514_string()

        for depth, cert in enumerate(chain):
            cert_info = self._get_certificate_info(cert, now)
            if not cert_info.is_valid:
                return self._failure(depth, f"Certificate is outside its validity window: {cert_info.subject}",
                                     leaf_subject)

            if self._is_trusted(cert):
                self.logger.info(f"Chain verified at depth {depth}: {leaf_subject}")
                return VerificationResult(is_valid=True, depth=depth, subject=leaf_subject)

            if depth + 1 < len(chain):
                issuer = chain[depth + 1]
            else:
                issuer = self._find_trusted_issuer(cert)
                if issuer is None:
                    return self._failure(depth, f"No trusted issuer found for: {cert_info.subject}",
                                         leaf_subject)

            error = self._check_issued_by(cert, issuer, now)
            if error:
                return self._failure(depth, error, leaf_subject)

            if issuer in self.trusted_certs:
                self.logger.info(f"Chain verified at depth {depth + 1}: {leaf_subject}")
                return VerificationResult(is_valid=True, depth=depth + 1, subject=leaf_subject)

        return self._failure(len(chain) - 1, "Chain does not end at a trusted certificate", leaf_subject)

    def _check_issued_by(self, cert: x509.Certificate, issuer: x509.Certificate,
                         now: datetime) -> Optional[str]:
        """Return an error message if ``issuer`` did not issue ``cert``."""
        if not self._is_ca(issuer):
            return f"Issuer is not a CA certificate: {issuer.subject.rfc4514_string()}"

        if not self._get_certificate_info(issuer, now).is_valid:
            return f"Issuer is outside its validity window: {issuer.subject.rfc4514_string()}"

        try:
            cert.verify_directly_issued_by(issuer)
        except ValueError as e:
            return f"Certificate not issued by {issuer.subject.rfc4514_string()}: {e}"
        except InvalidSignature:
            return f"Certificate signature is invalid for issuer {issuer.subject.rfc4514_string()}"
        except TypeError as e:
            return f"Unsupported issuer key: {e}"
        return None

    def _find_trusted_issuer(self, cert: x509.Certificate) -> Optional[x509.Certificate]:
        for candidate in self.trusted_certs:
            if candidate.subject == cert.issuer:
                return candidate
        return None

    def _is_trusted(self, cert: x509.Certificate) -> bool:
        return any(cert == trusted for trusted in self.trusted_certs)

    @staticmethod
    def _is_ca(cert: x509.Certificate) -> bool:
        try:
            return cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
        except x509.ExtensionNotFound:
            return False

    def _failure(self, depth: int, message: str, subject: str) -> VerificationResult:
        self.logger.warning(f"Chain verification failed at depth {depth}: {message}")
        return VerificationResult(is_valid=False, depth=depth, error_message=message, subject=subject)

    def _get_certificate_info(self, cert: x509.Certificate, now: Optional[datetime] = None) -> CertificateInfo:
        """Extract information from a certificate."""
        now = now or datetime.now(timezone.utc)

        not_before = cert.not_valid_before_utc
        not_after = cert.not_valid_after_utc

        return CertificateInfo(
            subject=cert.subject.rfc4514_string(),
            issuer=cert.issuer.rfc4514_string(),
            serial_number=format(cert.serial_number, "x"),
            not_before=not_before,
            not_after=not_after,
            is_valid=not_before <= now <= not_after,
            fingerprint=cert.fingerprint(hashes.SHA256()).hex(),
            is_ca=self._is_ca(cert)
        )

    def get_certificate_info(self, cert: x509.Certificate) -> CertificateInfo:
        """Get detailed information about a certificate."""
        return self._get_certificate_info(cert)

"""
Security package for certificate chain verification.
"""
from .models import VerificationResult, CertificateInfo
from .verification_service import VerificationService

__all__ = [
    'VerificationResult',
    'CertificateInfo',
    'VerificationService'
]

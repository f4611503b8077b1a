"""
Security models for certificate verification.
"""
from dataclasses import dataclass
from typing import Optional
from datetime import datetime


@dataclass
class VerificationResult:
    """Result of verifying a certificate chain."""
    is_valid: bool
    depth: int
    error_message: Optional[str] = None
    subject: Optional[str] = None


@dataclass
class CertificateInfo:
    """Information about a certificate."""
    subject: str
    issuer: str
    serial_number: str
    not_before: datetime
    not_after: datetime
    is_valid: bool
    fingerprint: str
    is_ca: bool = False

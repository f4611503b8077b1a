"""
Models package for the PKI issuance core.
"""

from .config import Config, ConfigValidationError, ConfigValidationResult
from .identity import Identity
from .artifacts import KeyPair, UnsignedCertificate, CAMaterial, RequestResult, SignResult, LedgerEntry
from .extensions import (
    ExtensionContext,
    ExtensionDescriptor,
    SubjectKeyIdentifierExtension,
    AuthorityKeyIdentifierExtension,
    BasicConstraintsExtension,
    KeyUsageExtension,
    ExtendedKeyUsageExtension,
    CertificatePoliciesExtension,
    SubjectAltNameExtension,
    RawExtension,
)

__all__ = [
    'Config',
    'ConfigValidationError',
    'ConfigValidationResult',
    'Identity',
    'KeyPair',
    'UnsignedCertificate',
    'CAMaterial',
    'RequestResult',
    'SignResult',
    'LedgerEntry',
    'ExtensionContext',
    'ExtensionDescriptor',
    'SubjectKeyIdentifierExtension',
    'AuthorityKeyIdentifierExtension',
    'BasicConstraintsExtension',
    'KeyUsageExtension',
    'ExtendedKeyUsageExtension',
    'CertificatePoliciesExtension',
    'SubjectAltNameExtension',
    'RawExtension',
]

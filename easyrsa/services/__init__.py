"""
Services package for the PKI issuance core.
"""

from .config_service import ConfigService
from .factory import CertificateFactory
from .pki_store import PKIStore
from .serial_service import IssuanceLedger, SerialAllocator
from .template_registry import TemplateRegistry, get_template_registry

__all__ = [
    'ConfigService',
    'CertificateFactory',
    'PKIStore',
    'IssuanceLedger',
    'SerialAllocator',
    'TemplateRegistry',
    'get_template_registry'
]

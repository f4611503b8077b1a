"""
easyrsa: local certificate authority issuance core.
"""

from .errors import (
    EasyRSAError,
    ConfigError,
    UnsupportedRoleError,
    MissingCAError,
    StoreError,
    StoreInitError,
    ArtifactExistsError,
    SigningError,
    SerialAllocationError,
)
from .models import Config, Identity, KeyPair, CAMaterial, RequestResult, SignResult, LedgerEntry
from .main import EasyRSA

__version__ = "1.0.0"

__all__ = [
    'EasyRSA',
    'Config',
    'Identity',
    'KeyPair',
    'CAMaterial',
    'RequestResult',
    'SignResult',
    'LedgerEntry',
    'EasyRSAError',
    'ConfigError',
    'UnsupportedRoleError',
    'MissingCAError',
    'StoreError',
    'StoreInitError',
    'ArtifactExistsError',
    'SigningError',
    'SerialAllocationError',
]

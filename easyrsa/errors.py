"""
Error taxonomy for PKI issuance operations.
"""


class EasyRSAError(Exception):
    """Base class for every error raised by the issuance core."""


class ConfigError(EasyRSAError, ValueError):
    """Invalid or missing configuration option or call argument."""


class UnsupportedRoleError(EasyRSAError):
    """Unknown certificate role or template combination."""

    def __init__(self, template: str, role: str):
        self.template = template
        self.role = role
        super().__init__(f"Type not supported: role '{role}' in template '{template}'")


class MissingCAError(EasyRSAError):
    """Leaf issuance attempted before the CA has been built."""


class StoreError(EasyRSAError):
    """Filesystem failure while reading or writing PKI state."""


class StoreInitError(StoreError):
    """Filesystem failure while initializing the PKI directory."""


class ArtifactExistsError(StoreError):
    """An artifact already exists and overwriting was not allowed."""


class SigningError(EasyRSAError):
    """Cryptographic signing failure or inconsistent issuer material."""


class SerialAllocationError(EasyRSAError):
    """Ledger write failure or exhausted serial space."""

"""
Configuration data models for the PKI issuance core.
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from ..errors import ConfigError


DEFAULT_PKI_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "pki"
)

SERIAL_STRATEGIES = ("sequential", "random")
MAX_SERIAL_NUMBER_BYTES = 20


@dataclass
class Config:
    """Main configuration class containing all issuance settings."""

    # PKI settings
    pki_dir: str = field(default=DEFAULT_PKI_DIR)
    template: str = "vpn"
    serial_number_bytes: int = 16
    serial_strategy: str = "sequential"
    key_size: int = 2048

    # Validity settings
    ca_expire_days: int = 3650
    cert_expire_days: int = 825

    # Application settings
    log_level: str = "INFO"
    log_file_path: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_types()

    def _validate_types(self):
        """Ensure all configuration values have correct types."""
        if not isinstance(self.pki_dir, (str, os.PathLike)) or not str(self.pki_dir):
            raise ConfigError("pki_dir must be a non-empty path")

        if not isinstance(self.template, str) or not self.template:
            raise ConfigError("template must be a non-empty string")

        if (not isinstance(self.serial_number_bytes, int)
                or not (1 <= self.serial_number_bytes <= MAX_SERIAL_NUMBER_BYTES)):
            raise ConfigError(
                f"serial_number_bytes must be an integer between 1 and {MAX_SERIAL_NUMBER_BYTES}"
            )

        if self.serial_strategy not in SERIAL_STRATEGIES:
            raise ConfigError(f"serial_strategy must be one of: {', '.join(SERIAL_STRATEGIES)}")

        if not isinstance(self.key_size, int) or self.key_size < 1024:
            raise ConfigError("key_size must be an integer of at least 1024 bits")

        if not isinstance(self.ca_expire_days, int) or self.ca_expire_days <= 0:
            raise ConfigError("ca_expire_days must be a positive integer")

        if not isinstance(self.cert_expire_days, int) or self.cert_expire_days <= 0:
            raise ConfigError("cert_expire_days must be a positive integer")

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ConfigError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    severity: str = "error"  # error, warning

    def __str__(self):
        return f"{self.severity.upper()}: {self.field} - {self.message}"


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: list[ConfigValidationError]
    warnings: list[ConfigValidationError]

    def __post_init__(self):
        """Separate errors and warnings."""
        all_issues = self.errors + self.warnings
        self.errors = [e for e in all_issues if e.severity == "error"]
        self.warnings = [e for e in all_issues if e.severity == "warning"]

    def has_errors(self) -> bool:
        """Check if there are any validation errors."""
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        """Check if there are any validation warnings."""
        return len(self.warnings) > 0

    def get_error_summary(self) -> str:
        """Get a formatted summary of all errors and warnings."""
        lines = []

        if self.errors:
            lines.append("Configuration Errors:")
            for error in self.errors:
                lines.append(f"  - {error}")

        if self.warnings:
            lines.append("Configuration Warnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines) if lines else "Configuration is valid"

"""
Configuration service for loading and validating issuance settings.
"""
import os
import configparser
from typing import Optional, Dict, Any
import logging

from ..errors import ConfigError
from ..models.config import Config, ConfigValidationError, ConfigValidationResult
from .template_registry import TemplateRegistry, get_template_registry


class ConfigService:
    """Service for loading and validating PKI configuration."""

    def __init__(self, config_path: Optional[str] = None, registry: Optional[TemplateRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or get_template_registry()
        self._config = None
        if config_path:
            self._config = self.load_config(config_path)

    def get_config(self) -> Config:
        """
        Get the loaded configuration.

        Returns:
            Config object

        Raises:
            ConfigError: If no configuration has been loaded
        """
        if self._config is None:
            raise ConfigError("No configuration loaded. Call load_config() first.")
        return self._config

    def load_config(self, config_path: str) -> Config:
        """
        Load configuration from a property file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config object with loaded settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigError: If config file is invalid or has validation errors
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        config_data = self._load_config_file(config_path)

        config = self._create_config_from_data(config_data)

        validation_result = self.validate_config(config)

        if validation_result.has_errors():
            error_summary = validation_result.get_error_summary()
            raise ConfigError(f"Configuration validation failed:\n{error_summary}")

        if validation_result.has_warnings():
            warning_summary = validation_result.get_error_summary()
            self.logger.warning(f"Configuration warnings:\n{warning_summary}")

        self._config = config
        return config

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Load configuration data from file."""
        config_parser = configparser.ConfigParser()

        try:
            config_parser.read(config_path)
        except configparser.Error as e:
            raise ConfigError(f"Failed to parse configuration file: {e}")

        # Flatten to section.key
        config_data = {}
        for section in config_parser.sections():
            for key, value in config_parser.items(section):
                config_key = f"{section}.{key}" if section != "DEFAULT" else key
                config_data[config_key] = value

        for key, value in config_parser.defaults().items():
            if key not in config_data:
                config_data[key] = value

        return config_data

    def _create_config_from_data(self, config_data: Dict[str, Any]) -> Config:
        """Create Config object from configuration data."""
        config_mapping = {
            # PKI settings
            "pki.dir": ("pki_dir", str),
            "pki_dir": ("pki_dir", str),
            "pki.template": ("template", str),
            "template": ("template", str),
            "pki.serial_number_bytes": ("serial_number_bytes", int),
            "serial_number_bytes": ("serial_number_bytes", int),
            "pki.serial_strategy": ("serial_strategy", str),
            "serial_strategy": ("serial_strategy", str),
            "pki.key_size": ("key_size", int),
            "key_size": ("key_size", int),

            # Validity settings
            "validity.ca_expire_days": ("ca_expire_days", int),
            "ca_expire_days": ("ca_expire_days", int),
            "validity.cert_expire_days": ("cert_expire_days", int),
            "cert_expire_days": ("cert_expire_days", int),

            # Application settings
            "app.log_level": ("log_level", str),
            "log_level": ("log_level", str),
            "app.log_file_path": ("log_file_path", str),
            "log_file_path": ("log_file_path", str),
        }

        config_kwargs = {}

        for config_key, raw_value in config_data.items():
            if config_key in config_mapping:
                field_name, field_type = config_mapping[config_key]
                try:
                    if field_type == int:
                        value = int(raw_value)
                    else:
                        value = str(raw_value).strip() if raw_value is not None else None
                        if value == "":
                            value = None
                except (ValueError, TypeError) as e:
                    raise ConfigError(f"Invalid value for {config_key}: {raw_value} ({e})")

                if value is not None:
                    config_kwargs[field_name] = value

        if "log_level" in config_kwargs:
            config_kwargs["log_level"] = config_kwargs["log_level"].upper()

        return Config(**config_kwargs)

    def validate_config(self, config: Config) -> ConfigValidationResult:
        """
        Validate configuration settings.

        Args:
            config: Configuration object to validate

        Returns:
            ConfigValidationResult with validation results
        """
        errors = []
        warnings = []

        if config.template not in self.registry.template_names():
            errors.append(ConfigValidationError(
                "template",
                f"Unknown template '{config.template}'. "
                f"Available: {', '.join(self.registry.template_names())}"
            ))

        if config.key_size < 2048:
            warnings.append(ConfigValidationError(
                "key_size",
                f"RSA keys of {config.key_size} bits are considered weak",
                "warning"
            ))

        if config.cert_expire_days > config.ca_expire_days:
            warnings.append(ConfigValidationError(
                "cert_expire_days",
                "Leaf certificates would outlive the CA certificate",
                "warning"
            ))

        if config.serial_strategy == "sequential" and config.serial_number_bytes < 2:
            warnings.append(ConfigValidationError(
                "serial_number_bytes",
                "A one byte sequential serial space allows at most 15 certificates",
                "warning"
            ))

        pki_parent = os.path.dirname(os.path.abspath(str(config.pki_dir)))
        if not os.path.exists(pki_parent):
            warnings.append(ConfigValidationError(
                "pki_dir",
                f"Parent directory does not exist yet: {pki_parent}",
                "warning"
            ))

        if config.log_file_path:
            log_dir = os.path.dirname(config.log_file_path)
            if log_dir and not os.path.exists(log_dir):
                warnings.append(ConfigValidationError(
                    "log_file_path",
                    f"Log directory does not exist: {log_dir}",
                    "warning"
                ))

        all_issues = errors + warnings
        return ConfigValidationResult(
            is_valid=len(errors) == 0,
            errors=all_issues,
            warnings=[]
        )

    def create_default_config_file(self, config_path: str) -> None:
        """
        Create a default configuration file with example settings.

        Args:
            config_path: Path where to create the config file
        """
        config_content = """# easyrsa configuration file

[pki]
dir = pki
template = vpn
serial_number_bytes = 16
serial_strategy = sequential
key_size = 2048

[validity]
ca_expire_days = 3650
cert_expire_days = 825

[app]
log_level = INFO
log_file_path =
"""

        config_dir = os.path.dirname(config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(config_path, 'w') as f:
            f.write(config_content)

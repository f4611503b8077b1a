"""
Unit tests for ConfigService and Config models.
"""
import unittest
import tempfile
import os
import shutil

from easyrsa.errors import ConfigError
from easyrsa.models.config import Config, ConfigValidationError, ConfigValidationResult, DEFAULT_PKI_DIR
from easyrsa.services.config_service import ConfigService


class TestConfig(unittest.TestCase):
    """Test cases for Config data model."""

    def test_config_default_values(self):
        """Test that Config has appropriate default values."""
        config = Config()

        # PKI settings
        self.assertEqual(config.pki_dir, DEFAULT_PKI_DIR)
        self.assertEqual(os.path.basename(config.pki_dir), "pki")
        self.assertEqual(config.template, "vpn")
        self.assertEqual(config.serial_number_bytes, 16)
        self.assertEqual(config.serial_strategy, "sequential")
        self.assertEqual(config.key_size, 2048)

        # Validity settings
        self.assertEqual(config.ca_expire_days, 3650)
        self.assertEqual(config.cert_expire_days, 825)

        # Application settings
        self.assertEqual(config.log_level, "INFO")
        self.assertIsNone(config.log_file_path)

    def test_config_type_validation(self):
        """Test that Config validates types correctly."""
        with self.assertRaises(ConfigError) as cm:
            Config(serial_number_bytes=0)
        self.assertIn("serial_number_bytes must be an integer between 1 and 20", str(cm.exception))

        with self.assertRaises(ConfigError):
            Config(serial_number_bytes=21)

        with self.assertRaises(ConfigError) as cm:
            Config(serial_strategy="timestamp")
        self.assertIn("serial_strategy must be one of", str(cm.exception))

        with self.assertRaises(ConfigError):
            Config(key_size=512)

        with self.assertRaises(ConfigError):
            Config(cert_expire_days=0)

        with self.assertRaises(ConfigError):
            Config(pki_dir="")

        # ConfigError is also a ValueError
        with self.assertRaises(ValueError) as cm:
            Config(log_level="INVALID")
        self.assertIn("log_level must be one of", str(cm.exception))

    def test_config_valid_values(self):
        """Test that Config accepts valid values."""
        config = Config(
            template="mdm",
            serial_number_bytes=9,
            serial_strategy="random",
            key_size=4096,
            log_level="DEBUG"
        )

        self.assertEqual(config.template, "mdm")
        self.assertEqual(config.serial_number_bytes, 9)
        self.assertEqual(config.serial_strategy, "random")
        self.assertEqual(config.key_size, 4096)
        self.assertEqual(config.log_level, "DEBUG")


class TestConfigValidationError(unittest.TestCase):
    """Test cases for ConfigValidationError."""

    def test_validation_error_string_representation(self):
        """Test string representation of validation errors."""
        error = ConfigValidationError("test_field", "Test message")
        self.assertEqual(str(error), "ERROR: test_field - Test message")

        warning = ConfigValidationError("test_field", "Test warning", "warning")
        self.assertEqual(str(warning), "WARNING: test_field - Test warning")


class TestConfigValidationResult(unittest.TestCase):
    """Test cases for ConfigValidationResult."""

    def test_validation_result_with_errors(self):
        """Test validation result with errors."""
        errors = [
            ConfigValidationError("field1", "Error 1"),
            ConfigValidationError("field2", "Warning 1", "warning")
        ]

        result = ConfigValidationResult(is_valid=False, errors=errors, warnings=[])

        self.assertTrue(result.has_errors())
        self.assertTrue(result.has_warnings())
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("Configuration Errors:", result.get_error_summary())

    def test_validation_result_valid(self):
        """Test validation result when valid."""
        result = ConfigValidationResult(is_valid=True, errors=[], warnings=[])

        self.assertFalse(result.has_errors())
        self.assertEqual(result.get_error_summary(), "Configuration is valid")


class TestConfigService(unittest.TestCase):
    """Test cases for ConfigService."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, "easyrsa.properties")

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def _write(self, content):
        with open(self.config_path, 'w') as f:
            f.write(content)

    def test_load_config_file(self):
        """Test loading a complete configuration file."""
        self._write(f"""
[pki]
dir = {self.temp_dir}/pki
template = ssl
serial_number_bytes = 9
serial_strategy = random
key_size = 3072

[validity]
ca_expire_days = 1000
cert_expire_days = 100

[app]
log_level = debug
log_file_path =
""")

        config = ConfigService(self.config_path).get_config()

        self.assertEqual(config.pki_dir, f"{self.temp_dir}/pki")
        self.assertEqual(config.template, "ssl")
        self.assertEqual(config.serial_number_bytes, 9)
        self.assertEqual(config.serial_strategy, "random")
        self.assertEqual(config.key_size, 3072)
        self.assertEqual(config.ca_expire_days, 1000)
        self.assertEqual(config.cert_expire_days, 100)
        self.assertEqual(config.log_level, "DEBUG")
        self.assertIsNone(config.log_file_path)

    def test_partial_config_uses_defaults(self):
        """Test that missing settings keep their defaults."""
        self._write("[pki]\ntemplate = mdm\n")

        config = ConfigService(self.config_path).get_config()

        self.assertEqual(config.template, "mdm")
        self.assertEqual(config.serial_number_bytes, 16)
        self.assertEqual(config.pki_dir, DEFAULT_PKI_DIR)

    def test_missing_file(self):
        """Test that a missing file raises FileNotFoundError."""
        with self.assertRaises(FileNotFoundError):
            ConfigService(os.path.join(self.temp_dir, "missing.properties"))

    def test_invalid_integer(self):
        """Test that non-numeric integers are rejected."""
        self._write("[pki]\nserial_number_bytes = many\n")

        with self.assertRaises(ConfigError) as cm:
            ConfigService(self.config_path)
        self.assertIn("serial_number_bytes", str(cm.exception))

    def test_unknown_template_is_an_error(self):
        """Test that an unregistered template fails validation."""
        self._write("[pki]\ntemplate = smime\n")

        with self.assertRaises(ConfigError) as cm:
            ConfigService(self.config_path)
        self.assertIn("Unknown template 'smime'", str(cm.exception))

    def test_validation_warnings(self):
        """Test that weak but usable settings only produce warnings."""
        config = Config(
            pki_dir=os.path.join(self.temp_dir, "missing", "pki"),
            key_size=1024,
            serial_number_bytes=1,
            ca_expire_days=10,
            cert_expire_days=20
        )

        result = ConfigService().validate_config(config)

        self.assertTrue(result.is_valid)
        self.assertEqual(
            sorted(w.field for w in result.warnings),
            ["cert_expire_days", "key_size", "pki_dir", "serial_number_bytes"]
        )

    def test_get_config_before_load(self):
        """Test that get_config requires a loaded configuration."""
        with self.assertRaises(ConfigError):
            ConfigService().get_config()

    def test_create_default_config_file(self):
        """Test that the default file loads back into default settings."""
        path = os.path.join(self.temp_dir, "conf", "easyrsa.properties")
        service = ConfigService()

        service.create_default_config_file(path)
        config = service.load_config(path)

        self.assertEqual(config.template, "vpn")
        self.assertEqual(config.pki_dir, "pki")
        self.assertEqual(config.cert_expire_days, 825)
        self.assertIsNone(config.log_file_path)


if __name__ == '__main__':
    unittest.main()

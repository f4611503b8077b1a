"""
Identity model: a commonName plus named subject attributes.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..errors import ConfigError


@dataclass
class Identity:
    """Logical identity that becomes a certificate Subject or Issuer."""
    common_name: str
    attributes: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.common_name, str) or not self.common_name.strip():
            raise ConfigError("commonName is required and must be a non-empty string")
        if self.attributes is None:
            self.attributes = {}
        if not isinstance(self.attributes, dict):
            raise ConfigError("attributes must be a mapping of attribute name to value")

    @classmethod
    def from_options(cls, common_name: str, attributes: Optional[Dict[str, str]] = None) -> "Identity":
        """Build an identity from call options, copying the attribute mapping."""
        return cls(common_name=common_name, attributes=dict(attributes or {}))

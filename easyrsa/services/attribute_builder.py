"""
Attribute builder: turns an Identity into an ordered X.509 Name.
"""
import logging
from typing import List

from cryptography import x509
from cryptography.x509.oid import NameOID

from ..errors import ConfigError
from ..models.identity import Identity

logger = logging.getLogger(__name__)

# Canonical order after commonName; each entry lists the accepted key spellings.
RECOGNIZED_ATTRIBUTES = [
    (NameOID.COUNTRY_NAME, ("countryName", "C")),
    (NameOID.STATE_OR_PROVINCE_NAME, ("stateOrProvinceName", "ST")),
    (NameOID.LOCALITY_NAME, ("localityName", "L")),
    (NameOID.ORGANIZATION_NAME, ("organizationName", "O")),
    (NameOID.ORGANIZATIONAL_UNIT_NAME, ("organizationalUnitName", "OU")),
]

_KNOWN_KEYS = {key for _, keys in RECOGNIZED_ATTRIBUTES for key in keys}


def build_attributes(identity: Identity) -> List[x509.NameAttribute]:
    """
    Build the ordered attribute list for an identity.

    commonName always comes first. Recognized attributes follow in canonical
    order and only when present with a non-empty value. Unrecognized keys are
    ignored. countryName must be a two-letter code (RFC 5280 limits it to a
    PrintableString of size 2); a full country name such as ``France`` is
    rejected rather than truncated.

    Raises:
        ConfigError: If an attribute value is rejected by the X.509 encoder
    """
    attributes = identity.attributes or {}

    ignored = sorted(key for key in attributes if key not in _KNOWN_KEYS and key != "commonName")
    if ignored:
        logger.debug(f"Ignoring unrecognized subject attributes: {', '.join(ignored)}")

    entries = [_name_attribute(NameOID.COMMON_NAME, identity.common_name)]
    for oid, keys in RECOGNIZED_ATTRIBUTES:
        value = next((attributes[key] for key in keys if attributes.get(key)), None)
        if value:
            entries.append(_name_attribute(oid, str(value)))

    return entries


def build_subject(identity: Identity) -> x509.Name:
    """Build the Subject (or Issuer) name for an identity."""
    return x509.Name(build_attributes(identity))


def _name_attribute(oid: x509.ObjectIdentifier, value: str) -> x509.NameAttribute:
    try:
        return x509.NameAttribute(oid, value)
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Invalid value for {oid._name}: {value!r} ({e})")

"""
Extension template registry.

A template maps each certificate role it supports to an ordered tuple of
extension descriptors. Adding a template is a data change: build the role
mapping and register it.
"""
import logging
from typing import Dict, List, Mapping, Tuple

from cryptography import x509

from ..errors import UnsupportedRoleError
from ..models.extensions import (
    AuthorityKeyIdentifierExtension,
    BasicConstraintsExtension,
    CertificatePoliciesExtension,
    ExtendedKeyUsageExtension,
    ExtensionContext,
    ExtensionDescriptor,
    KeyUsageExtension,
    RawExtension,
    SubjectAltNameExtension,
    SubjectKeyIdentifierExtension,
    render_extensions,
)

logger = logging.getLogger(__name__)

ROLE_CA = "ca"
ROLE_CLIENT = "client"
ROLE_SERVER = "server"

DEFAULT_TEMPLATE = "vpn"

MDM_DEVICE_TYPE_OID = "1.2.840.113635.100.6.10.2"
MDM_DEVICE_TYPE_VALUE = b"\x05\x00"

CA_DISCLAIMER = (
    "Reliance on this certificate by any party assumes acceptance of the then "
    "applicable standard terms and conditions of use, certificate policy and "
    "certification practice statements."
)

Descriptors = Tuple[ExtensionDescriptor, ...]

_CA_EXTENSIONS: Descriptors = (
    SubjectKeyIdentifierExtension(),
    AuthorityKeyIdentifierExtension(key_identifier=True, authority_cert_issuer=True, serial_number=True),
    BasicConstraintsExtension(ca=True, critical=True),
    KeyUsageExtension(key_cert_sign=True, crl_sign=True, critical=True),
)

_LEAF_PREFIX: Descriptors = (
    BasicConstraintsExtension(ca=False, critical=True),
    SubjectKeyIdentifierExtension(),
    AuthorityKeyIdentifierExtension(key_identifier=True),
)

_LEAF_KEY_USAGE = KeyUsageExtension(digital_signature=True, key_encipherment=True, critical=True)

# vpn/ssl clients get easy-rsa's client profile: clientAuth only, non-critical.
# The critical serverAuth + clientAuth pair belongs to the mdm device profile.
_CLIENT_EXTENSIONS: Descriptors = _LEAF_PREFIX + (
    _LEAF_KEY_USAGE,
    ExtendedKeyUsageExtension(client_auth=True),
)

_SERVER_EXTENSIONS: Descriptors = _LEAF_PREFIX + (
    _LEAF_KEY_USAGE,
    ExtendedKeyUsageExtension(server_auth=True),
)

BUILTIN_TEMPLATES: Dict[str, Dict[str, Descriptors]] = {
    "vpn": {
        ROLE_CA: _CA_EXTENSIONS,
        ROLE_CLIENT: _CLIENT_EXTENSIONS,
        ROLE_SERVER: _SERVER_EXTENSIONS,
    },
    "ssl": {
        ROLE_CA: _CA_EXTENSIONS,
        ROLE_CLIENT: _CLIENT_EXTENSIONS,
        ROLE_SERVER: _SERVER_EXTENSIONS + (SubjectAltNameExtension(),),
    },
    "mdm": {
        ROLE_CA: _CA_EXTENSIONS + (CertificatePoliciesExtension(explicit_text=CA_DISCLAIMER),),
        # Device identities also claim serverAuth; kept as the profile defines it.
        ROLE_CLIENT: _LEAF_PREFIX + (
            ExtendedKeyUsageExtension(server_auth=True, client_auth=True, critical=True),
            _LEAF_KEY_USAGE,
            RawExtension(oid=MDM_DEVICE_TYPE_OID, value=MDM_DEVICE_TYPE_VALUE, name="mdmDeviceType"),
        ),
    },
}


class TemplateRegistry:
    """Registry resolving (template, role) pairs to ordered extension descriptors."""

    def __init__(self, templates: Mapping[str, Mapping[str, Descriptors]] = None):
        self._templates: Dict[str, Dict[str, Descriptors]] = {}
        for name, roles in (BUILTIN_TEMPLATES if templates is None else templates).items():
            self.register_template(name, roles)

    def register_template(self, name: str, roles: Mapping[str, Descriptors]) -> None:
        """Register (or replace) a template from a role -> descriptors mapping."""
        self._templates[name] = {role: tuple(descriptors) for role, descriptors in roles.items()}
        logger.debug(f"Registered extension template '{name}' with roles: {', '.join(sorted(roles))}")

    def template_names(self) -> List[str]:
        return sorted(self._templates)

    def roles_for(self, template: str) -> List[str]:
        return sorted(self._templates.get(template, {}))

    def supports(self, template: str, role: str) -> bool:
        return role in self._templates.get(template, {})

    def extensions_for(self, template: str, role: str) -> List[ExtensionDescriptor]:
        """
        Get the ordered extension descriptors for a template and role.

        Raises:
            UnsupportedRoleError: If the template or the role is not registered
        """
        roles = self._templates.get(template)
        if roles is None or role not in roles:
            raise UnsupportedRoleError(template, role)
        return list(roles[role])

    def resolve(self, template: str, role: str,
                context: ExtensionContext) -> List[Tuple[x509.ExtensionType, bool]]:
        """Render the template's extensions for one certificate."""
        return render_extensions(tuple(self.extensions_for(template, role)), context)


_default_registry = None


def get_template_registry() -> TemplateRegistry:
    """Get the process-wide registry holding the built-in templates."""
    global _default_registry
    if _default_registry is None:
        _default_registry = TemplateRegistry()
    return _default_registry

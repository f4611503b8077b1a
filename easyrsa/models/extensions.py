"""
Extension descriptors: declarative X.509 extensions rendered per certificate.

Each descriptor is a small immutable value describing one extension and the
role parameters it carries. Templates are ordered tuples of descriptors; the
certificate factory renders them against an ``ExtensionContext`` that holds
the key and issuer material of the certificate being built.
"""
from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID, ExtensionOID, CertificatePoliciesOID

from ..errors import ConfigError


@dataclass(frozen=True)
class ExtensionContext:
    """Key and issuer material needed to render extensions for one certificate."""
    subject_public_key: object
    issuer_public_key: object
    issuer_name: x509.Name
    common_name: str
    issuer_serial: Optional[int] = None


class ExtensionDescriptor:
    """Base class for extension descriptors."""

    name: ClassVar[str]
    oid: ClassVar[str]
    critical: bool

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        raise NotImplementedError


@dataclass(frozen=True)
class SubjectKeyIdentifierExtension(ExtensionDescriptor):
    name: ClassVar[str] = "subjectKeyIdentifier"
    oid: ClassVar[str] = ExtensionOID.SUBJECT_KEY_IDENTIFIER.dotted_string
    critical: bool = False

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        return x509.SubjectKeyIdentifier.from_public_key(context.subject_public_key)


@dataclass(frozen=True)
class AuthorityKeyIdentifierExtension(ExtensionDescriptor):
    """authorityKeyIdentifier; keyIdentifier is the SHA-1 digest of the issuer key."""
    name: ClassVar[str] = "authorityKeyIdentifier"
    oid: ClassVar[str] = ExtensionOID.AUTHORITY_KEY_IDENTIFIER.dotted_string
    key_identifier: bool = True
    authority_cert_issuer: bool = False
    serial_number: bool = False
    critical: bool = False

    def __post_init__(self):
        # RFC 5280 requires issuer and serial to appear together
        if self.authority_cert_issuer != self.serial_number:
            raise ConfigError(
                "authorityKeyIdentifier needs both authorityCertIssuer and serialNumber, or neither"
            )

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        key_id = None
        if self.key_identifier:
            key_id = x509.SubjectKeyIdentifier.from_public_key(context.issuer_public_key).digest

        issuer = None
        serial = None
        if self.authority_cert_issuer:
            if context.issuer_serial is None:
                raise ConfigError("authorityKeyIdentifier serialNumber requires the issuer serial")
            issuer = [x509.DirectoryName(context.issuer_name)]
            serial = context.issuer_serial

        return x509.AuthorityKeyIdentifier(
            key_identifier=key_id,
            authority_cert_issuer=issuer,
            authority_cert_serial_number=serial
        )


@dataclass(frozen=True)
class BasicConstraintsExtension(ExtensionDescriptor):
    name: ClassVar[str] = "basicConstraints"
    oid: ClassVar[str] = ExtensionOID.BASIC_CONSTRAINTS.dotted_string
    ca: bool = False
    path_length: Optional[int] = None
    critical: bool = True

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        return x509.BasicConstraints(ca=self.ca, path_length=self.path_length if self.ca else None)


@dataclass(frozen=True)
class KeyUsageExtension(ExtensionDescriptor):
    name: ClassVar[str] = "keyUsage"
    oid: ClassVar[str] = ExtensionOID.KEY_USAGE.dotted_string
    digital_signature: bool = False
    content_commitment: bool = False
    key_encipherment: bool = False
    data_encipherment: bool = False
    key_agreement: bool = False
    key_cert_sign: bool = False
    crl_sign: bool = False
    critical: bool = True

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        return x509.KeyUsage(
            digital_signature=self.digital_signature,
            content_commitment=self.content_commitment,
            key_encipherment=self.key_encipherment,
            data_encipherment=self.data_encipherment,
            key_agreement=self.key_agreement,
            key_cert_sign=self.key_cert_sign,
            crl_sign=self.crl_sign,
            encipher_only=False,
            decipher_only=False
        )


@dataclass(frozen=True)
class ExtendedKeyUsageExtension(ExtensionDescriptor):
    name: ClassVar[str] = "extKeyUsage"
    oid: ClassVar[str] = ExtensionOID.EXTENDED_KEY_USAGE.dotted_string
    server_auth: bool = False
    client_auth: bool = False
    critical: bool = False

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        usages = []
        if self.server_auth:
            usages.append(ExtendedKeyUsageOID.SERVER_AUTH)
        if self.client_auth:
            usages.append(ExtendedKeyUsageOID.CLIENT_AUTH)
        if not usages:
            raise ConfigError("extKeyUsage must enable at least one usage")
        return x509.ExtendedKeyUsage(usages)


@dataclass(frozen=True)
class CertificatePoliciesExtension(ExtensionDescriptor):
    """certificatePolicies carrying a single user notice disclaimer."""
    name: ClassVar[str] = "certificatePolicies"
    oid: ClassVar[str] = ExtensionOID.CERTIFICATE_POLICIES.dotted_string
    explicit_text: str = ""
    policy_oid: str = CertificatePoliciesOID.ANY_POLICY.dotted_string
    critical: bool = False

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        qualifiers = None
        if self.explicit_text:
            qualifiers = [x509.UserNotice(notice_reference=None, explicit_text=self.explicit_text)]
        return x509.CertificatePolicies([
            x509.PolicyInformation(x509.ObjectIdentifier(self.policy_oid), qualifiers)
        ])


@dataclass(frozen=True)
class SubjectAltNameExtension(ExtensionDescriptor):
    """subjectAltName with the commonName as a DNS name."""
    name: ClassVar[str] = "subjectAltName"
    oid: ClassVar[str] = ExtensionOID.SUBJECT_ALTERNATIVE_NAME.dotted_string
    critical: bool = False

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        return x509.SubjectAlternativeName([x509.DNSName(context.common_name)])


@dataclass(frozen=True)
class RawExtension(ExtensionDescriptor):
    """Extension identified only by OID, carrying opaque DER bytes."""
    oid: str
    value: bytes
    name: str = "unknown"
    critical: bool = False

    def render(self, context: ExtensionContext) -> x509.ExtensionType:
        return x509.UnrecognizedExtension(x509.ObjectIdentifier(self.oid), self.value)


def render_extensions(descriptors: Tuple[ExtensionDescriptor, ...],
                      context: ExtensionContext) -> list:
    """Render descriptors in order into (extension value, critical) pairs."""
    return [(descriptor.render(context), descriptor.critical) for descriptor in descriptors]

"""
Issuance artifacts: key pairs, requests, certificates and ledger entries.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa


@dataclass
class KeyPair:
    """An RSA key pair. Key material is kept out of repr() and logs."""
    private_key: rsa.RSAPrivateKey = field(repr=False)
    pem: bytes = field(default=b"", repr=False)

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()

    @property
    def key_size(self) -> int:
        return self.private_key.key_size

    def to_pem(self) -> str:
        """PEM text of the private key, byte-identical to a supplied key."""
        return self.pem.decode("ascii")


@dataclass
class UnsignedCertificate:
    """Certificate fields assembled by the factory, ready for signing."""
    subject: x509.Name
    issuer: x509.Name
    public_key: rsa.RSAPublicKey = field(repr=False)
    serial_number: int
    not_valid_before: datetime
    not_valid_after: datetime
    extensions: List[Tuple[x509.ExtensionType, bool]] = field(default_factory=list)

    @property
    def is_self_issued(self) -> bool:
        return self.subject == self.issuer


@dataclass
class CAMaterial:
    """The CA private key and its self-signed certificate."""
    private_key: KeyPair
    cert: x509.Certificate


@dataclass
class RequestResult:
    """Result of generating a certificate signing request."""
    private_key: KeyPair
    csr: x509.CertificateSigningRequest


@dataclass
class SignResult:
    """Result of signing a request: the certificate and its serial hex string."""
    cert: x509.Certificate
    serial: str


@dataclass
class LedgerEntry:
    """One line of the issuance index."""
    serial: str
    subject: str
    role: str
    not_after: datetime
    status: str = "V"
    revoked_at: Optional[str] = None

    def to_line(self) -> str:
        """Render as a tab separated index line (OpenSSL index.txt layout)."""
        expiry = self.not_after.strftime("%y%m%d%H%M%SZ")
        subject = self.subject.replace("\t", " ").replace("\r", " ").replace("\n", " ")
        return "\t".join([
            self.status, expiry, self.revoked_at or "", self.serial.upper(), self.role, subject
        ])

    @classmethod
    def from_line(cls, line: str) -> "LedgerEntry":
        status, expiry, revoked_at, serial, role, subject = line.rstrip("\r\n").split("\t", 5)
        return cls(
            serial=serial,
            subject=subject,
            role=role,
            not_after=datetime.strptime(expiry, "%y%m%d%H%M%SZ"),
            status=status,
            revoked_at=revoked_at or None
        )

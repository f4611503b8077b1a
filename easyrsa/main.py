"""
Issuance orchestrator and command line entry point.

``EasyRSA`` composes the template registry, certificate factory, serial
allocator and PKI store into the public operations: init_pki, build_ca,
gen_req, sign_req and create_server.
"""

import dataclasses
import logging
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Sequence, Union

from cryptography import x509

from .errors import ConfigError, EasyRSAError, SerialAllocationError, SigningError
from .models.artifacts import CAMaterial, KeyPair, LedgerEntry, RequestResult, SignResult
from .models.config import Config
from .models.extensions import ExtensionContext
from .models.identity import Identity
from .security.models import VerificationResult
from .security.verification_service import VerificationService
from .services import pem_codec
from .services.attribute_builder import build_subject
from .services.config_service import ConfigService
from .services.factory import CertificateFactory
from .services.logging_service import ErrorTracker, LoggingService, PerformanceMonitor
from .services.pki_store import PKIStore
from .services.template_registry import (
    ROLE_CA, ROLE_CLIENT, ROLE_SERVER, TemplateRegistry, get_template_registry
)

DEFAULT_CA_COMMON_NAME = "Easy-RSA CA"

ASYNC_OPERATIONS = ("init_pki", "build_ca", "gen_req", "sign_req", "create_server")


class EasyRSA:
    """Issues keys, requests and certificates into one PKI directory."""

    def __init__(self, config: Optional[Config] = None, registry: Optional[TemplateRegistry] = None,
                 max_workers: int = 4, **options):
        """
        Initialize the orchestrator.

        Args:
            config: Base configuration (defaults to ``Config()``)
            registry: Template registry (defaults to the built-in templates)
            max_workers: Thread pool size used by ``submit``
            **options: Overrides for individual ``Config`` fields, e.g. ``pki_dir``
        """
        base_config = config or Config()
        try:
            self.config = dataclasses.replace(base_config, **options) if options else base_config
        except TypeError as e:
            raise ConfigError(f"Unknown option: {e}")

        self.registry = registry or get_template_registry()
        if self.config.template not in self.registry.template_names():
            raise ConfigError(
                f"Unknown template '{self.config.template}'. "
                f"Available: {', '.join(self.registry.template_names())}"
            )

        self.store = PKIStore(self.config.pki_dir, serial_strategy=self.config.serial_strategy)
        self.factory = CertificateFactory(key_size=self.config.key_size)
        self.performance_monitor = PerformanceMonitor()
        self.error_tracker = ErrorTracker()
        self.logger = logging.getLogger(__name__)

        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @property
    def template(self) -> str:
        return self.config.template

    @contextmanager
    def _operation(self, name: str, **details):
        """Measure an operation and record its failure before re-raising."""
        try:
            with self.performance_monitor.measure_operation(name, details):
                yield
        except Exception as e:
            self.error_tracker.track_error(e, name, details)
            raise

    # Operations

    def init_pki(self, force: bool = False) -> None:
        """Create the PKI directory; with ``force`` any existing one is reset."""
        with self._operation("init_pki", force=force):
            self.store.initialize(force=force)

    def build_ca(self, common_name: str = DEFAULT_CA_COMMON_NAME,
                 attributes: Optional[Dict[str, str]] = None,
                 serial_number_bytes: Optional[int] = None,
                 private_key: Optional[Union[str, bytes]] = None) -> CAMaterial:
        """
        Build the self-signed CA key and certificate.

        Args:
            common_name: CA commonName
            attributes: Additional subject attributes
            serial_number_bytes: Serial length in bytes (defaults to config)
            private_key: Existing PEM private key to reuse

        Returns:
            CAMaterial with the private key and the certificate
        """
        identity = Identity.from_options(common_name, attributes)
        byte_length = self._serial_bytes(serial_number_bytes)

        with self._operation("build_ca", common_name=identity.common_name, template=self.template):
            self.registry.extensions_for(self.template, ROLE_CA)
            self._ensure_store()

            key_pair = self._key_pair(private_key)
            subject = build_subject(identity)

            with self.store.lock:
                serial = self.store.serial_allocator.peek_serial(byte_length)
                context = ExtensionContext(
                    subject_public_key=key_pair.public_key,
                    issuer_public_key=key_pair.public_key,
                    issuer_name=subject,
                    common_name=identity.common_name,
                    issuer_serial=int(serial, 16)
                )
                unsigned = self.factory.build_certificate(
                    subject=subject,
                    issuer=subject,
                    public_key=key_pair.public_key,
                    serial_number=int(serial, 16),
                    extensions=self.registry.resolve(self.template, ROLE_CA, context),
                    validity_days=self.config.ca_expire_days
                )
                cert = self.factory.sign_certificate(unsigned, key_pair.private_key)

                cert_pem = pem_codec.certificate_to_pem(cert)
                self._commit_issuance(serial, cert, ROLE_CA, {
                    self.store.ca_key_path: key_pair.pem,
                    self.store.ca_cert_path: cert_pem,
                    self.store.serial_certificate_path(serial): cert_pem,
                })

        self.logger.info(f"Built CA '{identity.common_name}' with serial {serial}")
        return CAMaterial(private_key=key_pair, cert=cert)

    def gen_req(self, common_name: str, attributes: Optional[Dict[str, str]] = None,
                private_key: Optional[Union[str, bytes]] = None) -> RequestResult:
        """
        Generate a key pair (or reuse ``private_key``) and a CSR, and store both.

        Returns:
            RequestResult with the private key and the CSR
        """
        identity = Identity.from_options(common_name, attributes)

        with self._operation("gen_req", common_name=identity.common_name):
            self.store.entity_name(identity.common_name)
            self._ensure_store()

            key_pair = self._key_pair(private_key)
            csr = self.factory.build_csr(identity, key_pair)
            self.store.commit({
                self.store.key_path(identity.common_name): key_pair.pem,
                self.store.request_path(identity.common_name): pem_codec.csr_to_pem(csr),
            })

        self.logger.info(f"Generated request for '{identity.common_name}'")
        return RequestResult(private_key=key_pair, csr=csr)

    def sign_req(self, common_name: str, attributes: Optional[Dict[str, str]] = None,
                 role: str = ROLE_CLIENT, serial_number_bytes: Optional[int] = None) -> SignResult:
        """
        Sign the pending request for ``common_name`` with the CA.

        A pending request in ``reqs/`` is reused; otherwise a fresh key and
        request are generated and committed together with the certificate.

        Returns:
            SignResult with the certificate and its serial hex string

        Raises:
            UnsupportedRoleError: If the template has no such role
            MissingCAError: If the CA has not been built
            SigningError: If the pending request's signature is invalid
        """
        identity = Identity.from_options(common_name, attributes)
        byte_length = self._serial_bytes(serial_number_bytes)

        with self._operation("sign_req", common_name=identity.common_name, role=role, template=self.template):
            self.registry.extensions_for(self.template, role)
            self.store.entity_name(identity.common_name)
            ca = self.store.load_ca_material()

            artifacts = {}
            if self.store.has_request(identity.common_name):
                csr = self.store.load_request(identity.common_name)
                if not csr.is_signature_valid:
                    raise SigningError(f"Pending request for '{identity.common_name}' has an invalid signature")
            else:
                key_pair = self.factory.generate_key_pair()
                csr = self.factory.build_csr(identity, key_pair)
                artifacts[self.store.key_path(identity.common_name)] = key_pair.pem
                artifacts[self.store.request_path(identity.common_name)] = pem_codec.csr_to_pem(csr)

            public_key = csr.public_key()
            subject = build_subject(identity)

            with self.store.lock:
                serial = self.store.serial_allocator.peek_serial(byte_length)
                context = ExtensionContext(
                    subject_public_key=public_key,
                    issuer_public_key=ca.cert.public_key(),
                    issuer_name=ca.cert.subject,
                    common_name=identity.common_name,
                    issuer_serial=ca.cert.serial_number
                )
                unsigned = self.factory.build_certificate(
                    subject=subject,
                    issuer=ca.cert.subject,
                    public_key=public_key,
                    serial_number=int(serial, 16),
                    extensions=self.registry.resolve(self.template, role, context),
                    validity_days=self.config.cert_expire_days
                )
                cert = self.factory.sign_certificate(unsigned, ca.private_key.private_key, issuer_certificate=ca.cert)

                cert_pem = pem_codec.certificate_to_pem(cert)
                artifacts[self.store.certificate_path(identity.common_name)] = cert_pem
                artifacts[self.store.serial_certificate_path(serial)] = cert_pem
                self._commit_issuance(serial, cert, role, artifacts)

        self.logger.info(f"Signed {role} certificate for '{identity.common_name}' with serial {serial}")
        return SignResult(cert=cert, serial=serial)

    def create_server(self, common_name: str, attributes: Optional[Dict[str, str]] = None,
                      serial_number_bytes: Optional[int] = None) -> SignResult:
        """Generate a fresh request and sign it as a server certificate."""
        with self._operation("create_server", common_name=common_name, template=self.template):
            self.registry.extensions_for(self.template, ROLE_SERVER)
            self.store.load_ca_material()

            self.gen_req(common_name, attributes)
            return self.sign_req(common_name, attributes, role=ROLE_SERVER,
                                 serial_number_bytes=serial_number_bytes)

    def verify(self, chain: Sequence[x509.Certificate]) -> VerificationResult:
        """Verify a leaf-first chain against this store's CA certificate."""
        ca = self.store.load_ca_material()
        return VerificationService([ca.cert]).verify_chain(chain)

    def list_issuances(self) -> List[LedgerEntry]:
        return self.store.ledger.entries()

    # Async surface

    def submit(self, operation: Union[str, Callable], *args, **kwargs) -> Future:
        """
        Run an operation on the instance thread pool.

        Args:
            operation: One of ``ASYNC_OPERATIONS`` by name, or a callable

        Returns:
            Future resolving to the operation result
        """
        if isinstance(operation, str):
            if operation not in ASYNC_OPERATIONS:
                raise ConfigError(f"Unknown operation: {operation}")
            operation = getattr(self, operation)

        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="easyrsa")
            return self._executor.submit(operation, *args, **kwargs)

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    # Helpers

    def _ensure_store(self) -> None:
        if not self.store.is_initialized():
            self.store.initialize()

    def _key_pair(self, private_key: Optional[Union[str, bytes]]) -> KeyPair:
        if private_key:
            return self.factory.load_key_pair(private_key)
        return self.factory.generate_key_pair()

    def _serial_bytes(self, serial_number_bytes: Optional[int]) -> int:
        byte_length = self.config.serial_number_bytes if serial_number_bytes is None else serial_number_bytes
        if not isinstance(byte_length, int) or not (1 <= byte_length <= 20):
            raise ConfigError("serial_number_bytes must be an integer between 1 and 20")
        return byte_length

    def _commit_issuance(self, serial: str, cert: x509.Certificate, role: str, artifacts: Dict) -> None:
        entry = LedgerEntry(
            serial=serial,
            subject=cert.subject.rfc4514_string(),
            role=role,
            not_after=cert.not_valid_after_utc
        )
        self.store.commit(artifacts, ledger_entry=entry, on_recorded=lambda: self._advance_serial(serial))

    def _advance_serial(self, serial: str) -> None:
        try:
            self.store.serial_allocator.advance(serial)
        except SerialAllocationError as e:
            # index.txt stays authoritative for the next allocation
            self.logger.warning(f"Serial counter not advanced past {serial}: {e}")


def _parse_attributes(pairs: Optional[List[str]]) -> Dict[str, str]:
    attributes = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConfigError(f"Attributes must be given as KEY=VALUE, got: {pair}")
        attributes[key.strip()] = value.strip()
    return attributes


def _build_parser():
    import argparse

    parser = argparse.ArgumentParser(prog='easyrsa', description='Local certificate authority management')
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--pki-dir', help='PKI directory (overrides config)')
    parser.add_argument('--template', help='Extension template (overrides config)')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Log level (overrides config)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    init_parser = subparsers.add_parser('init-pki', help='Create the PKI directory')
    init_parser.add_argument('--force', action='store_true', help='Remove any existing PKI first')

    ca_parser = subparsers.add_parser('build-ca', help='Build the self-signed CA')
    ca_parser.add_argument('--cn', default=DEFAULT_CA_COMMON_NAME, help='CA commonName')
    ca_parser.add_argument('--attr', action='append', metavar='KEY=VALUE', help='Subject attribute')
    ca_parser.add_argument('--serial-bytes', type=int, help='Serial number length in bytes')
    ca_parser.add_argument('--key', help='Existing PEM private key to reuse')

    req_parser = subparsers.add_parser('gen-req', help='Generate a key and a signing request')
    req_parser.add_argument('cn', help='Entity commonName')
    req_parser.add_argument('--attr', action='append', metavar='KEY=VALUE', help='Subject attribute')
    req_parser.add_argument('--key', help='Existing PEM private key to reuse')

    sign_parser = subparsers.add_parser('sign-req', help='Sign a request with the CA')
    sign_parser.add_argument('type', help='Certificate role, e.g. client or server')
    sign_parser.add_argument('cn', help='Entity commonName')
    sign_parser.add_argument('--attr', action='append', metavar='KEY=VALUE', help='Subject attribute')
    sign_parser.add_argument('--serial-bytes', type=int, help='Serial number length in bytes')

    server_parser = subparsers.add_parser('build-server-full', help='Generate and sign a server certificate')
    server_parser.add_argument('cn', help='Server commonName')
    server_parser.add_argument('--attr', action='append', metavar='KEY=VALUE', help='Subject attribute')
    server_parser.add_argument('--serial-bytes', type=int, help='Serial number length in bytes')

    subparsers.add_parser('show-index', help='List issued certificates')

    return parser


def _read_key(path: Optional[str]) -> Optional[bytes]:
    if not path:
        return None
    with open(path, 'rb') as f:
        return f.read()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command line."""
    args = _build_parser().parse_args(argv)

    try:
        config = ConfigService(args.config).get_config() if args.config else Config()
        overrides = {}
        if args.pki_dir:
            overrides['pki_dir'] = args.pki_dir
        if args.template:
            overrides['template'] = args.template
        if args.log_level:
            overrides['log_level'] = args.log_level
        if overrides:
            config = dataclasses.replace(config, **overrides)

        LoggingService(config)

        with EasyRSA(config) as easyrsa:
            store = easyrsa.store

            if args.command == 'init-pki':
                easyrsa.init_pki(force=args.force)
                print(f"PKI initialized: {store.root}")

            elif args.command == 'build-ca':
                easyrsa.build_ca(common_name=args.cn, attributes=_parse_attributes(args.attr),
                                 serial_number_bytes=args.serial_bytes, private_key=_read_key(args.key))
                print(f"CA certificate: {store.ca_cert_path}")
                print(f"CA private key: {store.ca_key_path}")

            elif args.command == 'gen-req':
                easyrsa.gen_req(args.cn, attributes=_parse_attributes(args.attr), private_key=_read_key(args.key))
                print(f"Request: {store.request_path(args.cn)}")
                print(f"Private key: {store.key_path(args.cn)}")

            elif args.command == 'sign-req':
                result = easyrsa.sign_req(args.cn, attributes=_parse_attributes(args.attr), role=args.type,
                                          serial_number_bytes=args.serial_bytes)
                print(f"Certificate: {store.certificate_path(args.cn)}")
                print(f"Serial: {result.serial}")

            elif args.command == 'build-server-full':
                result = easyrsa.create_server(args.cn, attributes=_parse_attributes(args.attr),
                                               serial_number_bytes=args.serial_bytes)
                print(f"Certificate: {store.certificate_path(args.cn)}")
                print(f"Private key: {store.key_path(args.cn)}")
                print(f"Serial: {result.serial}")

            elif args.command == 'show-index':
                for entry in easyrsa.list_issuances():
                    print(f"{entry.status}\t{entry.serial}\t{entry.role}\t{entry.subject}")

    except (EasyRSAError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())

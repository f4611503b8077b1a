"""
PKI store: on-disk directory layout, artifact persistence and commit.
"""
import contextlib
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from cryptography import x509

from ..errors import ArtifactExistsError, ConfigError, MissingCAError, StoreError, StoreInitError
from ..models.artifacts import CAMaterial, KeyPair, LedgerEntry
from . import pem_codec
from .serial_service import IssuanceLedger, SerialAllocator

_store_locks: Dict[str, threading.RLock] = {}
_store_locks_guard = threading.Lock()

RESERVED_NAMES = {"ca"}


def get_store_lock(root) -> threading.RLock:
    """Get the in-process lock shared by every store handle on the same directory."""
    key = os.path.realpath(str(root))
    with _store_locks_guard:
        if key not in _store_locks:
            _store_locks[key] = threading.RLock()
        return _store_locks[key]


class PKIStore:
    """Owns the PKI directory layout and every artifact written into it."""

    def __init__(self, root, serial_strategy: str = "sequential"):
        self.root = Path(root)
        self.private_dir = self.root / "private"
        self.reqs_dir = self.root / "reqs"
        self.issued_dir = self.root / "issued"
        self.certs_by_serial_dir = self.root / "certs_by_serial"
        self.ca_cert_path = self.root / "ca.crt"
        self.ca_key_path = self.private_dir / "ca.key"
        self.index_path = self.root / "index.txt"
        self.serial_path = self.root / "serial"

        self.lock = get_store_lock(self.root)
        self.ledger = IssuanceLedger(self.index_path)
        self.serial_allocator = SerialAllocator(
            self.serial_path, self.ledger, strategy=serial_strategy, lock=self.lock
        )
        self.logger = logging.getLogger(__name__)

    @property
    def directories(self) -> List[Path]:
        return [self.root, self.private_dir, self.reqs_dir, self.issued_dir, self.certs_by_serial_dir]

    def initialize(self, force: bool = False) -> None:
        """
        Create the PKI directory layout.

        An existing directory is left in place unless ``force`` is set, in
        which case its contents are destroyed first.

        Raises:
            StoreInitError: On filesystem permission or I/O failure
        """
        with self.lock:
            try:
                if force and (self.root.exists() or self.root.is_symlink()):
                    self.logger.warning(f"Removing existing PKI directory: {self.root}")
                    if self.root.is_dir() and not self.root.is_symlink():
                        shutil.rmtree(self.root)
                    else:
                        self.root.unlink()

                for directory in self.directories:
                    directory.mkdir(parents=True, exist_ok=True)
                os.chmod(self.private_dir, 0o700)

                if not self.index_path.exists():
                    self.index_path.touch()
                if not self.serial_path.exists():
                    self.serial_path.write_text("01\n", encoding="ascii")
            except OSError as e:
                raise StoreInitError(f"Failed to initialize PKI directory {self.root}: {e}")

        self.logger.info(f"Initialized PKI directory: {self.root}")

    def is_initialized(self) -> bool:
        return all(directory.is_dir() for directory in self.directories)

    # Artifact paths

    def entity_name(self, common_name: str) -> str:
        """
        Validate a commonName for use as an artifact file name.

        Raises:
            ConfigError: If the name could escape the directory or clash with CA files
        """
        if (not common_name or common_name in (".", "..") or common_name.lower() in RESERVED_NAMES
                or any(sep in common_name for sep in ("/", "\\", "\x00"))):
            raise ConfigError(f"commonName cannot be used as an artifact name: {common_name!r}")
        return common_name

    def key_path(self, common_name: str) -> Path:
        return self.private_dir / f"{self.entity_name(common_name)}.key"

    def request_path(self, common_name: str) -> Path:
        return self.reqs_dir / f"{self.entity_name(common_name)}.req"

    def certificate_path(self, common_name: str) -> Path:
        return self.issued_dir / f"{self.entity_name(common_name)}.crt"

    def serial_certificate_path(self, serial: str) -> Path:
        return self.certs_by_serial_dir / f"{serial.upper()}.pem"

    # Direct saves

    def save_key(self, common_name: str, key_pair: KeyPair, overwrite: bool = True) -> Path:
        path = self.key_path(common_name)
        self._save(path, key_pair.pem, overwrite)
        return path

    def save_request(self, common_name: str, csr: x509.CertificateSigningRequest,
                     overwrite: bool = True) -> Path:
        path = self.request_path(common_name)
        self._save(path, pem_codec.csr_to_pem(csr), overwrite)
        return path

    def save_certificate(self, common_name: str, cert: x509.Certificate, overwrite: bool = True) -> Path:
        path = self.certificate_path(common_name)
        self._save(path, pem_codec.certificate_to_pem(cert), overwrite)
        return path

    def _save(self, path: Path, data: bytes, overwrite: bool) -> None:
        self.commit({path: data}, overwrite=overwrite)

    # Commit

    def commit(self, artifacts: Dict[Path, bytes], ledger_entry: Optional[LedgerEntry] = None,
               on_recorded: Optional[Callable[[], None]] = None, overwrite: bool = True) -> None:
        """
        Atomically persist a set of artifacts and, optionally, a ledger entry.

        Artifacts are staged in temporary files, the ledger entry is appended
        durably, then every staged file is renamed into place. A failure
        before the ledger append leaves nothing new on disk. Files being
        replaced are moved aside to ``.bak`` first; if a later rename fails,
        the placed files are removed and the originals restored. The ledger
        entry stays, so its serial is never handed out again.

        Raises:
            ArtifactExistsError: If ``overwrite`` is False and an artifact exists
            StoreError: On filesystem failure
            SerialAllocationError: If the ledger cannot be written
        """
        with self.lock:
            if not overwrite:
                existing = [str(path) for path in artifacts if path.exists()]
                if existing:
                    raise ArtifactExistsError(f"Refusing to overwrite: {', '.join(existing)}")

            staged: List[Tuple[Path, Path]] = []
            try:
                for path, data in artifacts.items():
                    tmp_path = path.with_name(path.name + ".tmp")
                    staged.append((tmp_path, path))
                    self._write_file(tmp_path, data, private=path.parent == self.private_dir)

                if ledger_entry is not None:
                    self.ledger.append(ledger_entry)
            except OSError as e:
                self._discard(staged)
                raise StoreError(f"Failed to stage PKI artifacts: {e}")
            except Exception:
                self._discard(staged)
                raise

            placed: List[Tuple[Path, Optional[Path]]] = []
            try:
                for tmp_path, path in staged:
                    backup = None
                    if path.exists():
                        backup = path.with_name(path.name + ".bak")
                        os.replace(path, backup)
                    placed.append((path, backup))
                    os.replace(tmp_path, path)
            except OSError as e:
                self._roll_back(placed)
                self._discard(staged)
                self.logger.error(f"Ledger entry recorded but artifacts not placed: {e}")
                raise StoreError(f"Failed to place PKI artifacts: {e}")

            for _, backup in placed:
                if backup is not None:
                    try:
                        backup.unlink()
                    except OSError as e:
                        self.logger.warning(f"Could not remove backup {backup}: {e}")

            if on_recorded is not None:
                on_recorded()

    def _roll_back(self, placed: List[Tuple[Path, Optional[Path]]]) -> None:
        for path, backup in reversed(placed):
            try:
                with contextlib.suppress(FileNotFoundError):
                    path.unlink()
                if backup is not None:
                    os.replace(backup, path)
            except OSError as e:
                self.logger.error(f"Could not restore {path}: {e}")

    @staticmethod
    def _write_file(path: Path, data: bytes, private: bool = False) -> None:
        mode = 0o600 if private else 0o644
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

    @staticmethod
    def _discard(staged: List[Tuple[Path, Path]]) -> None:
        for tmp_path, _ in staged:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()

    # Loads

    def has_ca(self) -> bool:
        return self.ca_cert_path.is_file() and self.ca_key_path.is_file()

    def load_ca_material(self) -> CAMaterial:
        """
        Load the CA private key and certificate.

        Raises:
            MissingCAError: If build_ca has not been run for this store
        """
        if not self.has_ca():
            raise MissingCAError(f"No CA found in {self.root}; run build_ca first")

        key_pem = self.ca_key_path.read_bytes()
        return CAMaterial(
            private_key=KeyPair(private_key=pem_codec.private_key_from_pem(key_pem), pem=key_pem),
            cert=pem_codec.certificate_from_pem(self.ca_cert_path.read_bytes())
        )

    def has_request(self, common_name: str) -> bool:
        return self.request_path(common_name).is_file()

    def load_request(self, common_name: str) -> x509.CertificateSigningRequest:
        return pem_codec.csr_from_pem(self.request_path(common_name).read_bytes())

    def load_certificate(self, common_name: str) -> x509.Certificate:
        return pem_codec.certificate_from_pem(self.certificate_path(common_name).read_bytes())

    def list_issued(self) -> List[str]:
        if not self.issued_dir.is_dir():
            return []
        return sorted(path.stem for path in self.issued_dir.glob("*.crt"))

"""
Unit tests for the PKI store.
"""
import os
import shutil
import stat
import tempfile
import unittest
from datetime import datetime
from unittest.mock import patch

from easyrsa.errors import (
    ArtifactExistsError,
    ConfigError,
    MissingCAError,
    SerialAllocationError,
    StoreError,
    StoreInitError,
)
from easyrsa.models.artifacts import LedgerEntry
from easyrsa.services.pki_store import PKIStore, get_store_lock


class TestPKIStore(unittest.TestCase):
    """Test cases for the directory layout and commits."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.root = os.path.join(self.temp_dir, "pki")
        self.store = PKIStore(self.root)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_initialize_layout(self):
        """Test the created directories and files."""
        self.store.initialize()

        for name in ("private", "reqs", "issued", "certs_by_serial"):
            self.assertTrue(os.path.isdir(os.path.join(self.root, name)))
        self.assertTrue(os.path.isfile(os.path.join(self.root, "index.txt")))
        with open(os.path.join(self.root, "serial")) as f:
            self.assertEqual(f.read(), "01\n")
        self.assertEqual(stat.S_IMODE(os.stat(self.store.private_dir).st_mode), 0o700)
        self.assertTrue(self.store.is_initialized())

    def test_initialize_keeps_existing_without_force(self):
        """Test that re-initializing leaves existing content in place."""
        self.store.initialize()
        marker = os.path.join(self.root, "issued", "keep.crt")
        with open(marker, "w") as f:
            f.write("x")

        self.store.initialize()

        self.assertTrue(os.path.exists(marker))

    def test_initialize_force_resets(self):
        """Test that force destroys existing content."""
        self.store.initialize()
        marker = os.path.join(self.root, "issued", "old.crt")
        with open(marker, "w") as f:
            f.write("x")

        self.store.initialize(force=True)

        self.assertFalse(os.path.exists(marker))
        self.assertTrue(self.store.is_initialized())

    def test_initialize_force_replaces_plain_file(self):
        """Test that force also clears a file occupying the path."""
        with open(self.root, "w") as f:
            f.write("x")

        self.store.initialize(force=True)

        self.assertTrue(os.path.isdir(self.root))

    def test_initialize_failure(self):
        """Test that filesystem errors raise StoreInitError."""
        with open(self.root, "w") as f:
            f.write("x")

        with self.assertRaises(StoreInitError):
            self.store.initialize()

    def test_entity_name_validation(self):
        """Test that unsafe or reserved names are rejected."""
        self.assertEqual(self.store.entity_name("server@foo.bar.com"), "server@foo.bar.com")
        for name in ("", ".", "..", "ca", "CA", "a/b", "a\\b", "a\x00b"):
            with self.assertRaises(ConfigError):
                self.store.entity_name(name)

    def test_artifact_paths(self):
        """Test the artifact naming scheme."""
        self.assertEqual(str(self.store.key_path("x")), os.path.join(self.root, "private", "x.key"))
        self.assertEqual(str(self.store.request_path("x")), os.path.join(self.root, "reqs", "x.req"))
        self.assertEqual(str(self.store.certificate_path("x")), os.path.join(self.root, "issued", "x.crt"))
        self.assertEqual(
            str(self.store.serial_certificate_path("0a")),
            os.path.join(self.root, "certs_by_serial", "0A.pem")
        )

    def test_commit_writes_files_and_modes(self):
        """Test that committed files land with the expected permissions."""
        self.store.initialize()
        key_path = self.store.key_path("x")
        req_path = self.store.request_path("x")

        self.store.commit({key_path: b"key", req_path: b"req"})

        with open(key_path, "rb") as f:
            self.assertEqual(f.read(), b"key")
        self.assertEqual(stat.S_IMODE(os.stat(key_path).st_mode), 0o600)
        self.assertFalse(os.path.exists(str(key_path) + ".tmp"))
        self.assertFalse(os.path.exists(str(req_path) + ".tmp"))

    def test_commit_refuses_overwrite(self):
        """Test that overwrite=False protects existing artifacts."""
        self.store.initialize()
        path = self.store.certificate_path("x")
        self.store.commit({path: b"first"})

        with self.assertRaises(ArtifactExistsError):
            self.store.commit({path: b"second"}, overwrite=False)

        with open(path, "rb") as f:
            self.assertEqual(f.read(), b"first")

    def test_commit_records_ledger_then_callback(self):
        """Test that the ledger entry and callback follow the artifacts."""
        self.store.initialize()
        path = self.store.certificate_path("x")
        entry = LedgerEntry(serial="01", subject="CN=x", role="client", not_after=datetime(2030, 1, 1))
        calls = []

        self.store.commit({path: b"cert"}, ledger_entry=entry, on_recorded=lambda: calls.append(path.exists()))

        self.assertEqual(calls, [True])
        self.assertEqual(self.store.ledger.serials(), {1})

    def test_commit_ledger_failure_leaves_nothing(self):
        """Test that a ledger failure discards staged artifacts."""
        self.store.initialize()
        path = self.store.certificate_path("x")
        entry = LedgerEntry(serial="01", subject="CN=x", role="client", not_after=datetime(2030, 1, 1))

        with patch.object(self.store.ledger, "append", side_effect=SerialAllocationError("disk full")):
            with self.assertRaises(SerialAllocationError):
                self.store.commit({path: b"cert"}, ledger_entry=entry)

        self.assertEqual(os.listdir(self.store.issued_dir), [])

    def test_commit_placement_failure_restores_originals(self):
        """Test that a failed rename rolls back files already placed."""
        self.store.initialize()
        cert_path = self.store.certificate_path("x")
        key_path = self.store.key_path("x")
        req_path = self.store.request_path("x")
        self.store.commit({cert_path: b"old cert"})
        entry = LedgerEntry(serial="01", subject="CN=x", role="client", not_after=datetime(2030, 1, 1))

        real_replace = os.replace
        calls = []

        def flaky_replace(src, dst):
            calls.append((src, dst))
            if len(calls) == 3:
                raise OSError("device busy")
            return real_replace(src, dst)

        with patch("easyrsa.services.pki_store.os.replace", side_effect=flaky_replace):
            with self.assertRaises(StoreError):
                self.store.commit(
                    {cert_path: b"new cert", key_path: b"key", req_path: b"req"},
                    ledger_entry=entry
                )

        with open(cert_path, "rb") as f:
            self.assertEqual(f.read(), b"old cert")
        self.assertEqual(os.listdir(self.store.issued_dir), ["x.crt"])
        self.assertEqual(os.listdir(self.store.private_dir), [])
        self.assertEqual(os.listdir(self.store.reqs_dir), [])
        self.assertEqual(self.store.ledger.serials(), {1})

    def test_commit_replaces_without_leftover_backup(self):
        """Test that overwriting an artifact leaves no backup behind."""
        self.store.initialize()
        path = self.store.certificate_path("x")
        self.store.commit({path: b"first"})

        self.store.commit({path: b"second"})

        with open(path, "rb") as f:
            self.assertEqual(f.read(), b"second")
        self.assertEqual(os.listdir(self.store.issued_dir), ["x.crt"])

    def test_load_ca_material_missing(self):
        """Test that a store without a CA raises MissingCAError."""
        self.store.initialize()

        with self.assertRaises(MissingCAError):
            self.store.load_ca_material()

    def test_lock_shared_per_directory(self):
        """Test that handles on the same directory share one lock."""
        other = PKIStore(os.path.join(self.temp_dir, ".", "pki"))

        self.assertIs(other.lock, self.store.lock)
        self.assertIs(get_store_lock(self.root), self.store.lock)
        self.assertIsNot(PKIStore(os.path.join(self.temp_dir, "other")).lock, self.store.lock)

    def test_list_issued(self):
        """Test listing of issued certificate names."""
        self.assertEqual(self.store.list_issued(), [])
        self.store.initialize()
        self.store.commit({self.store.certificate_path("b"): b"x", self.store.certificate_path("a"): b"y"})

        self.assertEqual(self.store.list_issued(), ["a", "b"])


if __name__ == '__main__':
    unittest.main()

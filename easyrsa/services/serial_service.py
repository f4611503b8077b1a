"""
Serial number allocation and the append-only issuance ledger.
"""
import logging
import os
import secrets
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set

from ..errors import ConfigError, SerialAllocationError
from ..models.artifacts import LedgerEntry
from ..models.config import MAX_SERIAL_NUMBER_BYTES, SERIAL_STRATEGIES

RANDOM_SERIAL_ATTEMPTS = 16


class IssuanceLedger:
    """Append-only index of issued certificates (one tab separated line each)."""

    def __init__(self, index_path):
        self.index_path = Path(index_path)
        self.logger = logging.getLogger(__name__)

    def record_issuance(self, serial: str, subject: str, role: str, not_after: datetime) -> LedgerEntry:
        """
        Append an issuance entry; the line is flushed and fsynced before returning.

        Raises:
            SerialAllocationError: If the ledger cannot be written
        """
        entry = LedgerEntry(serial=serial, subject=subject, role=role, not_after=not_after)
        self.append(entry)
        return entry

    def append(self, entry: LedgerEntry) -> None:
        try:
            with open(self.index_path, "a", encoding="utf-8", newline="\n") as f:
                f.write(entry.to_line() + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise SerialAllocationError(f"Failed to record issuance of serial {entry.serial}: {e}")

        self.logger.info(f"Recorded issuance: serial={entry.serial} role={entry.role} subject={entry.subject}")

    def entries(self) -> List[LedgerEntry]:
        if not self.index_path.exists():
            return []
        with open(self.index_path, "r", encoding="utf-8") as f:
            return [LedgerEntry.from_line(line) for line in f if line.strip()]

    def serials(self) -> Set[int]:
        return {int(entry.serial, 16) for entry in self.entries()}

    def find(self, serial: str) -> Optional[LedgerEntry]:
        wanted = int(serial, 16)
        return next((entry for entry in self.entries() if int(entry.serial, 16) == wanted), None)


class SerialAllocator:
    """
    Allocates fixed-length serial numbers, unique within one PKI directory.

    ``sequential`` serials come from a counter file starting at 1. The
    counter sits in the low bits of a full-width value whose top nibble is
    ``1``, so the encoded certificate serial always has ``2 * byte_length``
    hex digits. Counter values already in the ledger are skipped.
    ``random`` serials are drawn with a non-zero top nibble and rejected if
    already in the ledger.

    ``peek_serial`` and ``advance`` let a caller holding the store lock
    reserve a serial and persist the counter only once the issuance commits.
    """

    def __init__(self, serial_path, ledger: IssuanceLedger, strategy: str = "sequential",
                 lock: Optional[threading.RLock] = None):
        if strategy not in SERIAL_STRATEGIES:
            raise ConfigError(f"Unknown serial strategy: {strategy}")
        self.serial_path = Path(serial_path)
        self.ledger = ledger
        self.strategy = strategy
        self.lock = lock or threading.RLock()
        self.logger = logging.getLogger(__name__)

    def next_serial(self, byte_length: int) -> str:
        """Allocate and persist a serial of exactly ``2 * byte_length`` hex characters."""
        with self.lock:
            serial = self.peek_serial(byte_length)
            self.advance(serial)
            return serial

    def peek_serial(self, byte_length: int) -> str:
        """Compute the next serial without persisting anything."""
        _check_byte_length(byte_length)
        issued = self.ledger.serials()

        if self.strategy == "random":
            for _ in range(RANDOM_SERIAL_ATTEMPTS):
                candidate = secrets.randbits(8 * byte_length - 1) | (1 << (8 * byte_length - 4))
                if candidate not in issued:
                    return _format_serial(candidate, byte_length)
            raise SerialAllocationError(
                f"Could not find an unused random serial of {byte_length} bytes"
            )

        marker = _sequential_marker(byte_length)
        counter = self._read_counter()
        while counter < marker and (marker | counter) in issued:
            counter += 1
        if counter >= marker:
            raise SerialAllocationError(f"Serial number space of {byte_length} bytes is exhausted")
        return _format_serial(marker | counter, byte_length)

    def advance(self, serial: str) -> None:
        """Persist the counter past ``serial`` (no-op for random serials)."""
        if self.strategy != "sequential":
            return

        marker = _sequential_marker(len(serial) // 2)
        counter = int(serial, 16) & (marker - 1)
        next_counter = max(counter + 1, self._read_counter())

        next_value = format(next_counter, "X")
        if len(next_value) % 2:
            next_value = "0" + next_value

        tmp_path = self.serial_path.with_name(self.serial_path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="ascii", newline="\n") as f:
                f.write(next_value + "\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.serial_path)
        except OSError as e:
            raise SerialAllocationError(f"Failed to update serial counter: {e}")

    def _read_counter(self) -> int:
        if not self.serial_path.exists():
            return 1
        try:
            content = self.serial_path.read_text(encoding="ascii").strip()
            return max(int(content, 16), 1) if content else 1
        except (OSError, ValueError) as e:
            raise SerialAllocationError(f"Unreadable serial counter {self.serial_path}: {e}")


def _check_byte_length(byte_length: int) -> None:
    if not isinstance(byte_length, int) or not (1 <= byte_length <= MAX_SERIAL_NUMBER_BYTES):
        raise ConfigError(
            f"serialNumberBytes must be an integer between 1 and {MAX_SERIAL_NUMBER_BYTES}"
        )


def _sequential_marker(byte_length: int) -> int:
    """Top-nibble bit of a sequential serial; counters must stay below it."""
    return 1 << (8 * byte_length - 4)


def _format_serial(value: int, byte_length: int) -> str:
    return format(value, f"0{2 * byte_length}x")

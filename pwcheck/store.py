"""
pwcheck - Credential Store

This file handles:
- JSON file persistence for labelled passwords
- In-process locking (threading) and cross-process advisory locking
  (exclusive-create lock file next to the store)
- Atomic writes (temp file in the same directory + rename)

File format:
    {
      "entries": [
        {"label": "...", "password": "...",
         "created_at": "2024-01-01T12:00:00Z", "updated_at": "..."}
      ]
    }

NOTE: passwords are stored in plaintext. The file and its directory are
created owner-only (0600 / 0700), nothing more.
"""

import json
import logging
import os
import re
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from .errors import StorageError, ValidationError
from .procutil import is_process_alive

logger = logging.getLogger(__name__)

FILE_MODE = 0o600
DIR_MODE = 0o700
LOCK_SUFFIX = ".lock"
DEFAULT_LOCK_TIMEOUT = 30.0   # seconds
DEFAULT_POLL_INTERVAL = 0.05  # seconds

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


# =============================================================================
# TIMESTAMPS (RFC 3339, UTC)
# =============================================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # Other writers may emit nanoseconds; datetime holds microseconds
    text = _FRACTION_RE.sub(r".\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# =============================================================================
# RECORD
# =============================================================================

@dataclass
class StoredPassword:
    """A labelled credential as persisted in the store."""
    label: str
    password: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "password": self.password,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredPassword":
        return cls(
            label=str(data["label"]),
            password=str(data["password"]),
            created_at=parse_timestamp(data["created_at"]),
            updated_at=parse_timestamp(data["updated_at"]),
        )


# =============================================================================
# STORE
# =============================================================================

class CredentialStore:
    """
    File-backed password store safe against concurrent threads and processes.

    Every operation holds a process-local lock and the `<path>.lock` file
    for its whole read-modify-write cycle; the lock file is removed on every
    exit path.

    Usage:
        store = CredentialStore("~/.password-checker/passwords.json")
        store.save("github", "s3cr3t!")
        for entry in store.list():
            print(entry.label)
    """

    def __init__(
        self,
        path: str,
        lock_timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ):
        """
        Open (and if needed initialise) a store.

        Args:
            path: JSON file path; parent directories are created
            lock_timeout: Seconds to wait for the lock file, None to wait forever
            poll_interval: Seconds between lock acquisition attempts
        """
        if not path or not str(path).strip():
            raise ValidationError("storage path cannot be empty")
        if poll_interval <= 0:
            raise ValidationError("poll interval must be greater than zero")

        self.path = os.path.expanduser(str(path).strip())
        self.lock_path = self.path + LOCK_SUFFIX
        self.lock_timeout = lock_timeout
        self.poll_interval = poll_interval
        self._mutex = threading.Lock()

        directory = os.path.dirname(self.path)
        if directory:
            try:
                os.makedirs(directory, mode=DIR_MODE, exist_ok=True)
            except OSError as exc:
                raise StorageError(f"failed to create storage directory: {exc}") from exc

        self._ensure_initialised()

    def save(self, label: str, password: str) -> StoredPassword:
        """
        Create or update the entry for a label (case-insensitive match).

        An existing entry keeps its label casing and created_at; its
        password and updated_at are replaced.

        Returns:
            The stored record
        """
        clean_label = (label or "").strip()
        if not clean_label:
            raise ValidationError("label cannot be empty")
        if not password:
            raise ValidationError("password cannot be empty")

        with self._locked():
            entries = self._read_all()
            now = _utcnow()
            key = clean_label.casefold()

            for entry in entries:
                if entry.label.casefold() == key:
                    entry.password = password
                    entry.updated_at = now
                    self._write_all(entries)
                    return entry

            record = StoredPassword(
                label=clean_label,
                password=password,
                created_at=now,
                updated_at=now,
            )
            entries.append(record)
            self._write_all(entries)
            return record

    def list(self) -> List[StoredPassword]:
        """All entries, sorted by label (case-insensitive, ascending)."""
        with self._locked():
            entries = self._read_all()
        return sorted(entries, key=lambda e: e.label.casefold())

    def get(self, label: str) -> Optional[StoredPassword]:
        """Entry for a label (case-insensitive), or None."""
        key = (label or "").strip().casefold()
        if not key:
            raise ValidationError("label cannot be empty")
        with self._locked():
            entries = self._read_all()
        for entry in entries:
            if entry.label.casefold() == key:
                return entry
        return None

    # =========================================================================
    # LOCKING
    # =========================================================================

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._mutex:
            self._acquire_file_lock()
            try:
                yield
            finally:
                self._release_file_lock()

    def _acquire_file_lock(self) -> None:
        deadline = None
        if self.lock_timeout is not None:
            deadline = time.monotonic() + self.lock_timeout

        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, FILE_MODE)
            except FileExistsError:
                if self._break_stale_lock():
                    continue
                if deadline is not None and time.monotonic() >= deadline:
                    raise StorageError(
                        f"timed out after {self.lock_timeout}s waiting for storage lock "
                        f"{self.lock_path}"
                    )
                time.sleep(self.poll_interval)
                continue
            except OSError as exc:
                raise StorageError(f"failed to acquire storage lock: {exc}") from exc
            break

        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
        except OSError as exc:
            os.close(fd)
            self._release_file_lock()
            raise StorageError(f"failed to write storage lock: {exc}") from exc
        os.close(fd)
        logger.debug("Acquired storage lock %s", self.lock_path)

    def _release_file_lock(self) -> None:
        try:
            os.remove(self.lock_path)
        except FileNotFoundError:
            logger.warning("Storage lock %s vanished before release", self.lock_path)
        except OSError as exc:
            logger.warning("Failed to remove storage lock %s: %s", self.lock_path, exc)
        else:
            logger.debug("Released storage lock %s", self.lock_path)

    def _read_lock_owner(self, path: Optional[str] = None) -> Optional[int]:
        try:
            with open(path or self.lock_path, "r", encoding="ascii") as f:
                content = f.read().strip()
        except (OSError, UnicodeDecodeError):
            return None
        try:
            return int(content)
        except ValueError:
            # Empty while the owner is still writing its PID
            return None

    def _break_stale_lock(self) -> bool:
        """
        Remove the lock file if its owner process is gone. True if removed.

        The lock is first renamed to a name only this thread uses, so the
        PID check and the delete apply to the same file. If another waiter
        replaced the stale lock with its own in the meantime, that live
        lock is linked back into place.
        """
        owner = self._read_lock_owner()
        if owner is None or is_process_alive(owner):
            return False

        side_path = f"{self.lock_path}.{os.getpid()}-{threading.get_ident()}.stale"
        try:
            os.rename(self.lock_path, side_path)
        except FileNotFoundError:
            return True
        except OSError as exc:
            raise StorageError(f"failed to move stale storage lock: {exc}") from exc

        if self._read_lock_owner(side_path) != owner:
            self._restore_lock(side_path)
            return False

        _remove_quietly(side_path)
        logger.warning("Removed stale storage lock %s (pid %d)", self.lock_path, owner)
        return True

    def _restore_lock(self, side_path: str) -> None:
        try:
            os.link(side_path, self.lock_path)
        except FileExistsError:
            logger.warning("Storage lock %s was retaken while being restored", self.lock_path)
        except OSError as exc:
            logger.warning("Failed to restore storage lock %s: %s", self.lock_path, exc)
        _remove_quietly(side_path)

    # =========================================================================
    # FILE I/O
    # =========================================================================

    def _ensure_initialised(self) -> None:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, FILE_MODE)
        except FileExistsError:
            return
        except OSError as exc:
            raise StorageError(f"failed to create storage file: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"entries": []}, f, indent=2)
                f.write("\n")
        except OSError as exc:
            raise StorageError(f"failed to initialise storage file: {exc}") from exc

    def _read_all(self) -> List[StoredPassword]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as exc:
            raise StorageError(f"failed to read storage file: {exc}") from exc

        if not raw.strip():
            return []

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"failed to decode storage file: {exc}") from exc
        if not isinstance(payload, dict):
            raise StorageError("failed to decode storage file: expected a JSON object")

        entries = payload.get("entries") or []
        if not isinstance(entries, list):
            raise StorageError("failed to decode storage file: 'entries' must be a list")

        try:
            return [StoredPassword.from_dict(item) for item in entries]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise StorageError(f"failed to decode storage entry: {exc}") from exc

    def _write_all(self, entries: List[StoredPassword]) -> None:
        """Atomically replace the store: temp file, fsync, close, rename."""
        payload = {"entries": [entry.to_dict() for entry in entries]}
        directory = os.path.dirname(self.path) or "."

        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=directory, prefix="password-store-", suffix=".tmp"
            )
        except OSError as exc:
            raise StorageError(f"failed to create temporary storage file: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                if hasattr(os, "fchmod"):
                    os.fchmod(f.fileno(), FILE_MODE)
                json.dump(payload, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as exc:
            _remove_quietly(tmp_path)
            raise StorageError(f"failed to write storage file: {exc}") from exc

        logger.debug("Wrote %d entries to %s", len(entries), self.path)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove temporary file %s: %s", path, exc)

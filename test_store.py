"""
pwcheck - Credential Store Tests

Run with: python test_store.py   (or: pytest)

Exercises persistence, case-insensitive upserts, atomic writes, the lock
file protocol and concurrent access from threads and processes.
"""

import json
import multiprocessing
import os
import stat
import subprocess
import sys
import tempfile
import threading
import time
from datetime import timezone
from unittest import mock

import pytest

from pwcheck.errors import StorageError, ValidationError
from pwcheck.procutil import is_process_alive
from pwcheck.store import CredentialStore, parse_timestamp


def _tmp_store_path(tmp):
    return os.path.join(tmp, "nested", "passwords.json")


def _leftover_temp_files(directory):
    return [name for name in os.listdir(directory) if name.endswith(".tmp")]


def _save_worker(path, prefix, count):
    """Runs in a child process."""
    store = CredentialStore(path, lock_timeout=60)
    for i in range(count):
        store.save(f"{prefix}-{i}", f"pw-{prefix}-{i}")


# =============================================================================
# Basics
# =============================================================================

def test_store_initialisation():
    """Opening a store creates the directory tree and an empty document."""
    print("Testing Store Initialisation...")

    with tempfile.TemporaryDirectory() as tmp:
        path = _tmp_store_path(tmp)
        store = CredentialStore(path)

        assert os.path.exists(path)
        with open(path, encoding="utf-8") as f:
            assert json.load(f) == {"entries": []}
        assert store.list() == []
        assert not os.path.exists(store.lock_path), "Lock file removed after each operation"

        if os.name == "posix":
            assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
            assert stat.S_IMODE(os.stat(os.path.dirname(path)).st_mode) == 0o700

        # Reopening must not clobber existing data
        store.save("github", "pw")
        assert [e.label for e in CredentialStore(path).list()] == ["github"]

    _validation_checks()
    print("  [OK] Store initialisation works")


def _validation_checks():
    try:
        CredentialStore("   ")
        assert False, "Empty path must be rejected"
    except ValidationError:
        pass

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(os.path.join(tmp, "pw.json"))
        for label, password in (("", "pw"), ("   ", "pw"), ("label", "")):
            try:
                store.save(label, password)
                assert False, "Invalid input must be rejected"
            except ValidationError:
                pass
        assert store.list() == []


def test_save_and_update():
    """Saving an existing label (any casing) updates it in place."""
    print("Testing Save & Update...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(_tmp_store_path(tmp))

        first = store.save("  GitHub ", "first")
        assert first.label == "GitHub", "Label is trimmed"
        assert first.created_at == first.updated_at
        assert first.created_at.tzinfo is not None

        time.sleep(0.01)
        second = store.save("github", "second")

        entries = store.list()
        assert len(entries) == 1, "Case-insensitive labels are unique"
        entry = entries[0]
        assert entry.label == "GitHub", "Original casing preserved"
        assert entry.password == "second"
        assert entry.created_at == first.created_at
        assert entry.updated_at > entry.created_at
        assert second.updated_at == entry.updated_at

        assert store.get("GITHUB").password == "second"
        assert store.get("gitlab") is None

        with open(store.path, encoding="utf-8") as f:
            raw = json.load(f)["entries"][0]
        assert raw["created_at"].endswith("Z")
        assert raw["updated_at"].endswith("Z")
    print("  [OK] Save and update work")


def test_list_sorting():
    print("Testing List Sorting...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(_tmp_store_path(tmp))
        for label in ("banana", "Apple", "cherry"):
            store.save(label, f"pw-{label}")
        assert [e.label for e in store.list()] == ["Apple", "banana", "cherry"]
    print("  [OK] Entries sorted case-insensitively")


def test_empty_and_corrupt_files():
    print("Testing Empty & Corrupt Files...")

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "pw.json")
        store = CredentialStore(path)

        with open(path, "w", encoding="utf-8") as f:
            f.write("  \n")
        assert store.list() == [], "Whitespace-only file reads as empty"
        store.save("email", "pw")
        assert [e.label for e in store.list()] == ["email"]

        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")
        try:
            store.list()
            assert False, "Corrupt file must raise"
        except StorageError:
            pass
        assert not os.path.exists(store.lock_path), "Lock released after an error"
    print("  [OK] Empty and corrupt files handled")


def test_timestamp_parsing():
    print("Testing Timestamp Parsing...")

    parsed = parse_timestamp("2024-01-01T12:00:00.123456789Z")
    assert parsed.microsecond == 123456, "Nanoseconds truncated"
    assert parsed.tzinfo == timezone.utc

    parsed = parse_timestamp("2024-01-01T14:00:00+02:00")
    assert parsed.hour == 12
    print("  [OK] Timestamps parse")


# =============================================================================
# Atomic writes
# =============================================================================

def test_failed_write_keeps_original():
    """A write that dies halfway leaves the previous file intact."""
    print("Testing Atomic Writes...")

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "pw.json")
        store = CredentialStore(path)
        store.save("github", "original")
        with open(path, "rb") as f:
            before = f.read()

        def partial_dump(obj, fp, **kwargs):
            fp.write('{"entries": [{"label": "gith')
            raise OSError("disk full")

        with mock.patch("pwcheck.store.json.dump", side_effect=partial_dump):
            try:
                store.save("github", "replacement")
                assert False, "Write failure must raise"
            except StorageError as e:
                assert "disk full" in str(e)

        with open(path, "rb") as f:
            assert f.read() == before, "Original file untouched"
        assert _leftover_temp_files(tmp) == [], "Temp file cleaned up"
        assert not os.path.exists(store.lock_path)
        assert store.get("github").password == "original"

        store.save("github", "replacement")
        assert store.get("github").password == "replacement"
        assert _leftover_temp_files(tmp) == []
    print("  [OK] Failed writes are atomic")


# =============================================================================
# Locking
# =============================================================================

def test_process_liveness():
    print("Testing Process Liveness...")

    assert is_process_alive(os.getpid())
    assert not is_process_alive(0)
    assert not is_process_alive(-1)

    child = subprocess.Popen([sys.executable, "-c", "pass"])
    child.wait()
    assert not is_process_alive(child.pid), "Reaped child is gone"
    print("  [OK] Process liveness works")


def test_stale_lock_recovered():
    """A lock left by a dead process is broken."""
    print("Testing Stale Lock Recovery...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(os.path.join(tmp, "pw.json"), lock_timeout=1.0)
        with open(store.lock_path, "w") as f:
            f.write("424242")

        with mock.patch("pwcheck.store.is_process_alive", return_value=False) as alive:
            store.save("github", "pw")
        alive.assert_called_with(424242)
        assert not os.path.exists(store.lock_path)
        assert store.get("github").password == "pw"
    print("  [OK] Stale lock recovered")


def test_retaken_lock_not_removed():
    """A stale lock replaced by a live owner mid-break is put back, not deleted."""
    print("Testing Retaken Lock...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(os.path.join(tmp, "pw.json"), lock_timeout=0.3)
        with open(store.lock_path, "w") as f:
            f.write("424242")

        def dead_then_retaken(pid):
            if pid == 424242:
                # Another waiter breaks the stale lock and takes it first
                with open(store.lock_path, "w") as f:
                    f.write(str(os.getpid()))
                return False
            return True

        with mock.patch("pwcheck.store.is_process_alive", side_effect=dead_then_retaken):
            try:
                store.save("github", "pw")
                assert False, "Live lock must not be stolen"
            except StorageError as e:
                assert "timed out" in str(e)

        with open(store.lock_path) as f:
            assert f.read() == str(os.getpid()), "Live owner's lock restored"
        assert [n for n in os.listdir(tmp) if n.endswith(".stale")] == []
        os.remove(store.lock_path)
    print("  [OK] Retaken lock left alone")


def test_live_lock_times_out():
    """A lock held by a live process is respected until the timeout."""
    print("Testing Lock Timeout...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(os.path.join(tmp, "pw.json"), lock_timeout=0.2)

        for owner in (str(os.getpid()), ""):
            with open(store.lock_path, "w") as f:
                f.write(owner)

            started = time.monotonic()
            try:
                store.save("github", "pw")
                assert False, "Held lock must time out"
            except StorageError as e:
                assert "timed out" in str(e)
            assert time.monotonic() - started >= 0.2
            assert os.path.exists(store.lock_path), "Someone else's lock is left alone"
            os.remove(store.lock_path)

        store.save("github", "pw")
        assert store.get("github") is not None
    print("  [OK] Lock timeout works")


def test_concurrent_threads():
    print("Testing Concurrent Threads...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(os.path.join(tmp, "pw.json"))
        errors = []

        def worker(n):
            try:
                for i in range(5):
                    store.save(f"thread{n}-{i}", f"pw{n}-{i}")
            except Exception as e:  # surfaced through the errors list
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(store.list()) == 40
        with open(store.path, encoding="utf-8") as f:
            assert len(json.load(f)["entries"]) == 40
        assert not os.path.exists(store.lock_path)
        assert _leftover_temp_files(tmp) == []
    print("  [OK] Concurrent threads are serialised")


def test_concurrent_processes():
    print("Testing Concurrent Processes...")

    if "fork" not in multiprocessing.get_all_start_methods():
        pytest.skip("fork start method unavailable")
    ctx = multiprocessing.get_context("fork")

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "pw.json")
        CredentialStore(path)

        procs = [
            ctx.Process(target=_save_worker, args=(path, f"proc{n}", 5))
            for n in range(4)
        ]
        for p in procs:
            p.start()
        for p in procs:
            p.join(60)
            assert p.exitcode == 0, f"worker exited with {p.exitcode}"

        labels = {e.label for e in CredentialStore(path).list()}
        expected = {f"proc{n}-{i}" for n in range(4) for i in range(5)}
        assert labels == expected, "No lost updates"
        assert not os.path.exists(path + ".lock")
        assert _leftover_temp_files(tmp) == []
    print("  [OK] Concurrent processes are serialised")


def run_all_tests():
    """Run all tests."""
    print("=" * 70)
    print("pwcheck - Credential Store Test Suite")
    print("=" * 70)
    print()

    tests = [
        test_store_initialisation,
        test_save_and_update,
        test_list_sorting,
        test_empty_and_corrupt_files,
        test_timestamp_parsing,
        test_failed_write_keeps_original,
        test_process_liveness,
        test_stale_lock_recovered,
        test_retaken_lock_not_removed,
        test_live_lock_times_out,
        test_concurrent_threads,
        test_concurrent_processes,
    ]

    failed = []

    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] TEST FAILED: {e}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)

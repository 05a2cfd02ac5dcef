"""
pwcheck - Process Utilities

Liveness probing used to detect stale store lock files. When the answer is
ambiguous (e.g. permission denied) the process is assumed to be alive, so a
lock is never stolen from a running owner.
"""

import os

# Windows constants
_PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
_STILL_ACTIVE = 259
_ERROR_INVALID_PARAMETER = 87


def is_process_alive(pid: int) -> bool:
    """True if a process with this PID appears to be running."""
    if pid <= 0:
        return False
    if os.name == "nt":
        return _is_process_alive_windows(pid)
    return _is_process_alive_posix(pid)


def _is_process_alive_posix(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except OSError:
        # EPERM and friends: exists but not ours
        return True
    return True


def _is_process_alive_windows(pid: int) -> bool:
    import ctypes
    from ctypes import wintypes

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    kernel32.OpenProcess.restype = wintypes.HANDLE

    handle = kernel32.OpenProcess(_PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
    if not handle:
        return ctypes.get_last_error() != _ERROR_INVALID_PARAMETER
    try:
        exit_code = wintypes.DWORD()
        if not kernel32.GetExitCodeProcess(handle, ctypes.byref(exit_code)):
            return True
        return exit_code.value == _STILL_ACTIVE
    finally:
        kernel32.CloseHandle(handle)

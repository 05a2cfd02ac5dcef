"""
pwcheck - Error Types

Every error raised by the library derives from PwcheckError so the CLI can
report it in one place. Validation problems also derive from ValueError.
"""

from typing import List, Optional, Tuple


class PwcheckError(Exception):
    """Base class for all pwcheck errors."""


class ValidationError(PwcheckError, ValueError):
    """Bad constructor argument or empty input. Never retried."""


class ConfigError(PwcheckError):
    """Malformed configuration value."""


class BreachCheckError(PwcheckError):
    """A breach provider could not produce an answer."""


class NetworkError(BreachCheckError):
    """Transport-level failure talking to a remote provider."""


class DeadlineExceededError(NetworkError):
    """The caller's time budget ran out before an answer was available."""


class RateLimitError(BreachCheckError):
    """The remote API answered 429 Too Many Requests."""


class UnexpectedResponseError(BreachCheckError):
    """The remote API answered with a status we do not handle."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AggregateFailureError(BreachCheckError):
    """
    One or more providers failed and no breach was confirmed.

    Attributes:
        failures: (provider name, exception) pairs, in query order
        all_failed: True when no provider produced an answer at all
    """

    def __init__(self, failures: List[Tuple[str, Exception]], all_failed: bool):
        self.failures = list(failures)
        self.all_failed = all_failed
        scope = "all" if all_failed else "some"
        joined = "; ".join(f"{name}: {err}" for name, err in self.failures)
        super().__init__(f"{scope} breach providers failed: {joined}")


class StorageError(PwcheckError):
    """I/O, locking or decoding failure in the credential store."""

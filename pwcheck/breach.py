"""
pwcheck - Breach Providers

This file handles:
- The provider contract every breach source implements
- Offline SHA-1 hash datasets (embedded or loaded from disk)
- The aggregator that fans a check out to several providers

Aggregation policy:
    Providers are queried one at a time, in configured order. The first
    provider that reports a breach wins and the rest are skipped, so put
    cheap local datasets before network providers. Failures are collected;
    if no provider confirmed a breach and any provider failed, the check
    fails instead of reporting "not breached".
"""

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from . import crypto
from .errors import (
    AggregateFailureError,
    DeadlineExceededError,
    ValidationError,
)

logger = logging.getLogger(__name__)

GLOBAL_DATASET_PATH = Path(__file__).resolve().parent / "datasets" / "global_sha1.txt"
GLOBAL_DATASET_NAME = "Curated public breach corpus"


# =============================================================================
# PROVIDER CONTRACT
# =============================================================================

class BreachProvider(ABC):
    """
    A source that can tell whether a password appeared in a breach.

    Implementations raise a BreachCheckError subclass when they cannot
    answer, and ValidationError for bad input.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-friendly identifier of the source."""

    @abstractmethod
    def is_breached(self, password: str, timeout: Optional[float] = None) -> bool:
        """
        Check a password against this source.

        Args:
            password: Password to check (never transmitted in clear)
            timeout: Remaining time budget in seconds, None for unbounded
        """


# =============================================================================
# OFFLINE DATASETS
# =============================================================================

class HashDataset(BreachProvider):
    """
    Read-only set of SHA-1 digests from an offline breach list.

    Usage:
        dataset = HashDataset("sample", ["7C4A8D09CA3762AF61E59520943DC26494F8941B"])
        dataset.is_breached("123456")   # True
    """

    def __init__(self, name: str, hashes: Iterable[str]):
        if not name or not name.strip():
            raise ValidationError("dataset name cannot be empty")

        hash_set = set()
        for index, raw in enumerate(hashes):
            normalized = raw.strip().upper()
            if not normalized:
                continue
            if not crypto.is_sha1_hex(normalized):
                raise ValidationError(f"invalid SHA-1 hash at index {index}")
            hash_set.add(normalized)

        if not hash_set:
            raise ValidationError("dataset must contain at least one hash entry")

        self._name = name
        self._hashes = frozenset(hash_set)

    @classmethod
    def from_file(cls, path, name: Optional[str] = None) -> "HashDataset":
        """
        Load a dataset with one digest per line. Lines starting with '#' are
        comments.
        """
        path = Path(path)
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise ValidationError(f"failed to read breach dataset {path}: {exc}") from exc
        hashes = [line for line in lines if not line.lstrip().startswith("#")]
        return cls(name or path.stem, hashes)

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._hashes)

    def __contains__(self, hex_digest: object) -> bool:
        return isinstance(hex_digest, str) and hex_digest.strip().upper() in self._hashes

    def is_breached(self, password: str, timeout: Optional[float] = None) -> bool:
        if not password:
            raise ValidationError("password must not be empty")
        if timeout is not None and timeout <= 0:
            raise DeadlineExceededError("deadline exceeded")
        return crypto.sha1_hex(password) in self._hashes

    def __repr__(self) -> str:
        return f"HashDataset(name={self._name!r}, size={len(self._hashes)})"


def load_global_dataset() -> HashDataset:
    """Dataset embedded in the package: digests from public breach corpora."""
    return HashDataset.from_file(GLOBAL_DATASET_PATH, GLOBAL_DATASET_NAME)


# =============================================================================
# AGGREGATOR
# =============================================================================

class BreachAggregator(BreachProvider):
    """
    Composite provider querying several providers in order.

    The aggregator is itself a BreachProvider, so aggregators can be nested.
    """

    def __init__(self, providers: Sequence[BreachProvider]):
        providers = list(providers or [])
        if not providers:
            raise ValidationError("at least one breach provider is required")
        for index, provider in enumerate(providers):
            if provider is None:
                raise ValidationError(f"breach provider at index {index} is None")
            if not isinstance(provider, BreachProvider):
                raise ValidationError(
                    f"breach provider at index {index} is not a BreachProvider: {provider!r}"
                )
        self._providers = providers

    @property
    def name(self) -> str:
        return "Aggregated Breach Providers"

    @property
    def providers(self) -> Tuple[BreachProvider, ...]:
        return tuple(self._providers)

    def is_breached(self, password: str, timeout: Optional[float] = None) -> bool:
        """
        Check a password against every provider until one confirms a breach.

        Returns:
            True as soon as any provider reports a breach,
            False only if every provider answered and none did

        Raises:
            ValidationError: empty password
            AggregateFailureError: no breach confirmed and at least one
                provider failed (all_failed tells the two cases apart)
        """
        if not password:
            raise ValidationError("password must not be empty")

        deadline = None if timeout is None else time.monotonic() + timeout
        failures: List[Tuple[str, Exception]] = []

        for provider in self._providers:
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    failures.append((provider.name, DeadlineExceededError("deadline exceeded")))
                    continue

            logger.debug("Querying breach provider %s", provider.name)
            try:
                breached = provider.is_breached(password, timeout=remaining)
            except ValidationError:
                raise
            except Exception as exc:
                logger.warning("Breach provider %s failed: %s", provider.name, exc)
                failures.append((provider.name, exc))
                continue

            if breached:
                logger.debug("Breach confirmed by %s", provider.name)
                return True
            if deadline is not None and time.monotonic() > deadline:
                # A negative answer that arrived late is not trusted
                logger.warning("Breach provider %s answered after the deadline", provider.name)
                failures.append((
                    provider.name,
                    DeadlineExceededError("provider answered after the deadline"),
                ))

        if failures:
            raise AggregateFailureError(
                failures, all_failed=len(failures) == len(self._providers)
            )
        return False

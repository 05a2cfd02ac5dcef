"""
pwcheck - Service Facade

Composes the strength evaluator, password generator, breach providers and
credential store behind the four operations the CLI needs.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .breach import BreachAggregator, BreachProvider, HashDataset, load_global_dataset
from .config import Config
from .crypto import PasswordGenerator
from .errors import ValidationError
from .hibp import RemoteBreachClient
from .store import CredentialStore, StoredPassword
from .strength import Finding, Strength, StrengthEvaluator

logger = logging.getLogger(__name__)


@dataclass
class Assessment:
    """Result of evaluating one password. Not persisted."""
    strength: Strength
    findings: List[Finding] = field(default_factory=list)
    breached: bool = False

    def to_dict(self) -> dict:
        return {
            "strength": self.strength.value,
            "findings": [f.to_dict() for f in self.findings],
            "breached": self.breached,
        }


class PasswordService:
    """
    Facade over evaluation, generation, breach checks and storage.

    Usage:
        service = build_service(load_config())
        assessment = service.evaluate_password("hunter2", timeout=7.0)
    """

    def __init__(
        self,
        evaluator: StrengthEvaluator,
        generator: PasswordGenerator,
        breach_checker: BreachProvider,
        store: Optional[CredentialStore] = None
    ):
        if evaluator is None:
            raise ValidationError("evaluator cannot be None")
        if generator is None:
            raise ValidationError("generator cannot be None")
        if breach_checker is None:
            raise ValidationError("breach checker cannot be None")
        self.evaluator = evaluator
        self.generator = generator
        self.breach_checker = breach_checker
        self.store = store

    def evaluate_password(self, password: str, timeout: Optional[float] = None) -> Assessment:
        """
        Rate a password and check it for breaches.

        Breach check failures propagate; an assessment is only returned when
        the breach answer is definite.
        """
        strength, findings = self.evaluator.evaluate(password)
        breached = self.breach_checker.is_breached(password, timeout=timeout)
        return Assessment(strength=strength, findings=findings, breached=breached)

    def generate_password(self, bits: int) -> str:
        return self.generator.generate(bits)

    def save_password(self, label: str, password: str) -> StoredPassword:
        return self._require_store().save(label, password)

    def list_saved_passwords(self) -> List[StoredPassword]:
        return self._require_store().list()

    def _require_store(self) -> CredentialStore:
        if self.store is None:
            raise ValidationError("password storage is not configured")
        return self.store


def build_breach_checker(config: Config, offline: bool = False) -> BreachAggregator:
    """
    Providers in query order: embedded dataset, configured offline datasets,
    then (unless offline) the remote range API.
    """
    providers: List[BreachProvider] = [load_global_dataset()]
    for path in config.datasets.paths:
        providers.append(HashDataset.from_file(path))
    if not offline:
        providers.append(RemoteBreachClient(
            config.pwned_api.base_url,
            config.pwned_api.user_agent,
            config.pwned_api.timeout,
        ))
    logger.debug("Breach providers: %s", ", ".join(p.name for p in providers))
    return BreachAggregator(providers)


def build_service(
    config: Config,
    offline: bool = False,
    with_store: bool = True
) -> PasswordService:
    """
    Wire the production object graph from configuration.

    Args:
        config: Loaded configuration
        offline: Skip the remote range API provider
        with_store: Open (and create if needed) the credential store
    """
    evaluator = StrengthEvaluator(config.password.min_length)
    generator = PasswordGenerator(
        config.generator.min_length,
        bits_per_character=config.generator.bits_per_character,
        special_charset=config.generator.special_charset,
    )
    return PasswordService(
        evaluator,
        generator,
        build_breach_checker(config, offline=offline),
        store=CredentialStore(config.storage.path) if with_store else None,
    )

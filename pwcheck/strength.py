"""
pwcheck - Strength Evaluation

Checks a password against the configured policy and rates it:
- weak: violates a mandatory rule (too short, or a common password)
- moderate: meets the policy but misses a character class or length margin
- strong: every character class present and comfortably above min length
"""

import unicodedata
from dataclasses import asdict, dataclass
from enum import Enum
from typing import List, Tuple

from .errors import ValidationError


class Strength(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


class Severity(str, Enum):
    ERROR = "error"
    WARN = "warn"


@dataclass(frozen=True)
class Finding:
    """A policy violation or recommendation found during evaluation."""
    code: str
    message: str
    severity: Severity
    requirement: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


# Characters beyond min_length required for a "strong" rating
STRONG_LENGTH_MARGIN = 4

COMMON_PASSWORDS = frozenset({
    "123456", "password", "123456789", "12345678", "qwerty",
    "abc123", "password1", "111111", "123123", "letmein",
    "welcome", "admin", "dragon", "football", "iloveyou",
    "monkey", "sunshine", "princess", "qwerty123", "login",
})


def is_common_password(password: str) -> bool:
    """True when the password is in the built-in list of common passwords."""
    return password.lower() in COMMON_PASSWORDS


def _is_special(char: str) -> bool:
    # Unicode punctuation (P*) or symbol (S*) categories
    return unicodedata.category(char)[0] in ("P", "S")


class StrengthEvaluator:
    """
    Evaluates passwords against a minimum-length policy.

    Usage:
        evaluator = StrengthEvaluator(min_length=12)
        strength, findings = evaluator.evaluate("correct horse")
    """

    def __init__(self, min_length: int):
        if min_length <= 0:
            raise ValidationError("minimum length must be greater than zero")
        self.min_length = min_length

    def evaluate(self, password: str) -> Tuple[Strength, List[Finding]]:
        """
        Rate a password and list the findings that led to the rating.

        Findings are ordered: length, character classes, common password.

        Returns:
            (strength, findings)
        """
        findings = []

        length = len(password)
        if length < self.min_length:
            findings.append(Finding(
                code="length.minimum",
                message="password is shorter than the minimum required length",
                severity=Severity.ERROR,
                requirement="length",
            ))

        has_upper = has_lower = has_digit = has_special = False
        for c in password:
            if c.isupper():
                has_upper = True
            elif c.islower():
                has_lower = True
            elif unicodedata.category(c) == "Nd":
                # Decimal digits only; '²' and similar are not digits here
                has_digit = True
            elif _is_special(c):
                has_special = True

        if not has_upper:
            findings.append(Finding(
                code="charset.uppercase",
                message="add at least one uppercase character",
                severity=Severity.WARN,
                requirement="character_sets",
            ))
        if not has_lower:
            findings.append(Finding(
                code="charset.lowercase",
                message="add at least one lowercase character",
                severity=Severity.WARN,
                requirement="character_sets",
            ))
        if not has_digit:
            findings.append(Finding(
                code="charset.numeric",
                message="add at least one numeric character",
                severity=Severity.WARN,
                requirement="character_sets",
            ))
        if not has_special:
            findings.append(Finding(
                code="charset.special",
                message="add at least one special character",
                severity=Severity.WARN,
                requirement="character_sets",
            ))

        if is_common_password(password):
            findings.append(Finding(
                code="password.common",
                message="password is commonly used and easily guessable",
                severity=Severity.ERROR,
                requirement="common_passwords",
            ))

        if any(f.severity is Severity.ERROR for f in findings):
            return Strength.WEAK, findings
        if not findings and length >= self.min_length + STRONG_LENGTH_MARGIN:
            return Strength.STRONG, findings
        return Strength.MODERATE, findings

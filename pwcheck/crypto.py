"""
pwcheck - Cryptography Module

This file contains the hashing and randomness used by the checker:
- SHA-1 digests in the format breach corpora publish them
- The k-anonymity prefix/suffix split used by the range API
- Secure password generation from a target bit strength

Hashing goes through the 'cryptography' library primitives; randomness
comes from the 'secrets' module (os.urandom underneath).
"""

import math
import re
import secrets
import string
from typing import Tuple

from cryptography.hazmat.primitives import hashes

from .errors import ValidationError


# =============================================================================
# Configuration
# =============================================================================

SHA1_HEX_LENGTH = 40     # 160-bit digest, hex encoded
RANGE_PREFIX_LENGTH = 5  # characters sent to the range API

LOWER_CHARSET = string.ascii_lowercase
UPPER_CHARSET = string.ascii_uppercase
DIGIT_CHARSET = string.digits
DEFAULT_SPECIAL_CHARSET = "!@#$%^&*()_+-=[]{}|;:,.<>?/"

# ~log2(len(charset)) for the default charset
DEFAULT_BITS_PER_CHARACTER = 5.95

_SHA1_HEX_RE = re.compile(r"[0-9A-Fa-f]{40}")


# =============================================================================
# Hashing
# =============================================================================

def sha1_hex(password: str) -> str:
    """
    Return the uppercase SHA-1 hex digest of a password.

    Breach corpora (and the range API) publish SHA-1 digests of the UTF-8
    encoded password in uppercase hex, so that is the canonical form used
    everywhere in pwcheck.

    Args:
        password: Password to hash

    Returns:
        40-character uppercase hex string
    """
    digest = hashes.Hash(hashes.SHA1())
    digest.update(password.encode("utf-8"))
    return digest.finalize().hex().upper()


def split_hash(hex_digest: str) -> Tuple[str, str]:
    """
    Split a SHA-1 hex digest for a k-anonymity range query.

    Only the prefix leaves the machine; the suffix is compared locally
    against every suffix the API returns for that prefix.

    Returns:
        (prefix, suffix) - 5 and 35 uppercase hex characters
    """
    normalized = hex_digest.strip().upper()
    if len(normalized) != SHA1_HEX_LENGTH:
        raise ValidationError(f"expected a {SHA1_HEX_LENGTH}-character SHA-1 digest")
    return normalized[:RANGE_PREFIX_LENGTH], normalized[RANGE_PREFIX_LENGTH:]


def is_sha1_hex(value: str) -> bool:
    """True if value is exactly 40 hexadecimal characters."""
    return _SHA1_HEX_RE.fullmatch(value) is not None


# =============================================================================
# Password Generation
# =============================================================================

class PasswordGenerator:
    """
    Generates passwords with at least the requested entropy.

    Every password contains at least one lowercase letter, one uppercase
    letter, one digit and one special character; the remaining positions
    are drawn from the union of all four sets and the result is shuffled.

    Usage:
        generator = PasswordGenerator(min_length=16)
        password = generator.generate(128)
    """

    def __init__(
        self,
        min_length: int,
        bits_per_character: float = DEFAULT_BITS_PER_CHARACTER,
        special_charset: str = DEFAULT_SPECIAL_CHARSET
    ):
        if min_length <= 0:
            raise ValidationError("minimum length must be greater than zero")
        if bits_per_character <= 0:
            raise ValidationError("bits per character must be greater than zero")
        if not special_charset:
            raise ValidationError("special character set cannot be empty")

        self.min_length = min_length
        self.bits_per_character = bits_per_character
        self.special_charset = special_charset
        self.charset = LOWER_CHARSET + UPPER_CHARSET + DIGIT_CHARSET + special_charset

    def length_for_bits(self, bits: int) -> int:
        """Password length needed for `bits` of entropy, never below min_length."""
        return max(math.ceil(bits / self.bits_per_character), self.min_length)

    def generate(self, bits: int) -> str:
        """
        Generate a password with at least `bits` of entropy.

        Args:
            bits: Target bit strength (e.g. 128)

        Returns:
            Random password string
        """
        if bits <= 0:
            raise ValidationError("bits must be greater than zero")

        length = self.length_for_bits(bits)
        required_sets = [LOWER_CHARSET, UPPER_CHARSET, DIGIT_CHARSET, self.special_charset]
        if length < len(required_sets):
            raise ValidationError(
                f"password length {length} insufficient to satisfy required character sets"
            )

        chars = [secrets.choice(charset) for charset in required_sets]
        chars.extend(secrets.choice(self.charset) for _ in range(length - len(chars)))

        # Required characters were placed first; move them somewhere random
        secrets.SystemRandom().shuffle(chars)
        return "".join(chars)

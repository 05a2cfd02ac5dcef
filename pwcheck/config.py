"""
pwcheck - Configuration

All runtime settings come from environment variables (a local .env file is
loaded by the CLI before this runs). Unset variables fall back to the
defaults below; malformed values raise ConfigError naming the variable.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .crypto import DEFAULT_BITS_PER_CHARACTER, DEFAULT_SPECIAL_CHARSET
from .errors import ConfigError
from .hibp import DEFAULT_BASE_URL

ENV_HIBP_BASE_URL = "HIBP_BASE_URL"
ENV_HIBP_HTTP_TIMEOUT = "HIBP_HTTP_TIMEOUT"
ENV_HIBP_USER_AGENT = "HIBP_USER_AGENT"
ENV_PASSWORD_MIN_LENGTH = "PASSWORD_MIN_LENGTH"
ENV_GENERATOR_MIN_LENGTH = "GENERATOR_MIN_LENGTH"
ENV_GENERATOR_BITS = "GENERATOR_DEFAULT_BITS"
ENV_CLI_MAX_RETRIES = "CLI_MAX_PROMPT_RETRIES"
ENV_STORAGE_PATH = "PASSWORD_STORE_PATH"
ENV_DATASET_PATHS = "BREACH_DATASET_PATHS"
ENV_LOG_LEVEL = "LOG_LEVEL"

DEFAULT_HTTP_TIMEOUT = 5.0   # seconds
DEFAULT_USER_AGENT = "password-checker/1.0"
DEFAULT_PASSWORD_MIN_LENGTH = 12
DEFAULT_GENERATOR_MIN_LENGTH = 16
DEFAULT_GENERATOR_BITS = 128
DEFAULT_CLI_MAX_RETRIES = 3
DEFAULT_LOG_LEVEL = "WARNING"

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m)?$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, None: 1.0}


def default_storage_path() -> str:
    home = os.path.expanduser("~")
    if home and home != "~":
        return os.path.join(home, ".password-checker", "passwords.json")
    return "passwords.json"


@dataclass(frozen=True)
class PasswordConfig:
    min_length: int = DEFAULT_PASSWORD_MIN_LENGTH


@dataclass(frozen=True)
class GeneratorConfig:
    min_length: int = DEFAULT_GENERATOR_MIN_LENGTH
    default_bits: int = DEFAULT_GENERATOR_BITS
    bits_per_character: float = DEFAULT_BITS_PER_CHARACTER
    special_charset: str = DEFAULT_SPECIAL_CHARSET


@dataclass(frozen=True)
class PwnedAPIConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_HTTP_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT


@dataclass(frozen=True)
class CLIConfig:
    max_prompt_retries: int = DEFAULT_CLI_MAX_RETRIES


@dataclass(frozen=True)
class StorageConfig:
    path: str = field(default_factory=default_storage_path)


@dataclass(frozen=True)
class DatasetConfig:
    paths: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Config:
    password: PasswordConfig = field(default_factory=PasswordConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    pwned_api: PwnedAPIConfig = field(default_factory=PwnedAPIConfig)
    cli: CLIConfig = field(default_factory=CLIConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    datasets: DatasetConfig = field(default_factory=DatasetConfig)
    log_level: str = DEFAULT_LOG_LEVEL


def parse_duration(raw: str) -> float:
    """
    Parse a duration into seconds: '5', '2.5s', '500ms' or '1m'.

    Raises:
        ValueError: unparsable or non-positive duration
    """
    match = _DURATION_RE.match(raw.strip().lower())
    if not match:
        raise ValueError(f"invalid duration {raw!r}")
    seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise ValueError("duration must be greater than zero")
    return seconds


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"invalid {name} value: {raw}") from None
    if value < 1:
        raise ConfigError(f"invalid {name} value: {raw}")
    return value


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Build the runtime configuration from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Frozen Config
    """
    env = os.environ if environ is None else environ

    base_url = env.get(ENV_HIBP_BASE_URL, "").strip().rstrip("/") or DEFAULT_BASE_URL

    timeout = DEFAULT_HTTP_TIMEOUT
    timeout_raw = env.get(ENV_HIBP_HTTP_TIMEOUT, "").strip()
    if timeout_raw:
        try:
            timeout = parse_duration(timeout_raw)
        except ValueError as exc:
            raise ConfigError(f"invalid {ENV_HIBP_HTTP_TIMEOUT} value: {exc}") from exc

    user_agent = env.get(ENV_HIBP_USER_AGENT, "").strip() or DEFAULT_USER_AGENT

    storage_path = env.get(ENV_STORAGE_PATH, "").strip()
    if storage_path:
        if os.path.normpath(storage_path) == ".":
            raise ConfigError(f"invalid {ENV_STORAGE_PATH} value: {storage_path}")
    else:
        storage_path = default_storage_path()

    dataset_raw = env.get(ENV_DATASET_PATHS, "")
    dataset_paths = tuple(p.strip() for p in dataset_raw.split(os.pathsep) if p.strip())

    log_level = env.get(ENV_LOG_LEVEL, "").strip().upper() or DEFAULT_LOG_LEVEL
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"invalid {ENV_LOG_LEVEL} value: {log_level}")

    return Config(
        password=PasswordConfig(
            min_length=_positive_int(env, ENV_PASSWORD_MIN_LENGTH, DEFAULT_PASSWORD_MIN_LENGTH),
        ),
        generator=GeneratorConfig(
            min_length=_positive_int(env, ENV_GENERATOR_MIN_LENGTH, DEFAULT_GENERATOR_MIN_LENGTH),
            default_bits=_positive_int(env, ENV_GENERATOR_BITS, DEFAULT_GENERATOR_BITS),
        ),
        pwned_api=PwnedAPIConfig(
            base_url=base_url,
            timeout=timeout,
            user_agent=user_agent,
        ),
        cli=CLIConfig(
            max_prompt_retries=_positive_int(env, ENV_CLI_MAX_RETRIES, DEFAULT_CLI_MAX_RETRIES),
        ),
        storage=StorageConfig(path=storage_path),
        datasets=DatasetConfig(paths=dataset_paths),
        log_level=log_level,
    )

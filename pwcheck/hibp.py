"""
pwcheck - Have I Been Pwned Range API Client

k-anonymity lookup:
    1. SHA-1 the password locally (uppercase hex)
    2. Send only the first 5 characters: GET {base_url}/{prefix}
    3. The API returns every known suffix for that prefix as 'SUFFIX:count'
    4. Compare our 35-character suffix locally

The password and its full hash never leave the machine. Responses are
requested with padding so the response size does not leak the prefix
population either.
"""

import logging
import threading
from typing import Optional

import requests

from . import crypto
from .breach import BreachProvider
from .errors import (
    DeadlineExceededError,
    NetworkError,
    RateLimitError,
    UnexpectedResponseError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.pwnedpasswords.com/range"


class RemoteBreachClient(BreachProvider):
    """
    Breach provider backed by the Pwned Passwords range API.

    Usage:
        client = RemoteBreachClient(DEFAULT_BASE_URL, "my-tool/1.0", timeout=5.0)
        client.is_breached("hunter2")
    """

    def __init__(
        self,
        base_url: str,
        user_agent: str,
        timeout: float,
        session: Optional[requests.Session] = None
    ):
        if not base_url or not base_url.strip():
            raise ValidationError("base_url cannot be empty")
        if not user_agent or not user_agent.strip():
            raise ValidationError("user_agent cannot be empty")
        if timeout is None or timeout <= 0:
            raise ValidationError("timeout must be greater than zero")

        self.base_url = base_url.strip().rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def name(self) -> str:
        return "Have I Been Pwned"

    def is_breached(self, password: str, timeout: Optional[float] = None) -> bool:
        """
        Query the range API for the password's hash prefix.

        Args:
            password: Password to check
            timeout: Caller's remaining budget in seconds; the request uses
                whichever of this and the client timeout is shorter

        Raises:
            ValidationError: empty password
            DeadlineExceededError: budget exhausted or request timed out
            NetworkError: connection-level failure
            RateLimitError: HTTP 429
            UnexpectedResponseError: any other non-200, non-404 status
        """
        if not password:
            raise ValidationError("password must not be empty")

        request_timeout = self.timeout
        if timeout is not None:
            if timeout <= 0:
                raise DeadlineExceededError("deadline exceeded before querying hibp api")
            request_timeout = min(request_timeout, timeout)

        prefix, suffix = crypto.split_hash(crypto.sha1_hex(password))
        url = f"{self.base_url}/{prefix}"
        headers = {
            "Add-Padding": "true",
            "User-Agent": self.user_agent,
        }

        logger.debug("Querying range API for prefix %s", prefix)
        try:
            resp = self._get_within(url, headers, request_timeout)
        except requests.Timeout as exc:
            raise DeadlineExceededError(f"hibp api request timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"failed to query hibp api: {exc}") from exc

        status = f"{resp.status_code} {resp.reason or ''}".strip()

        if resp.status_code == 404:
            return False
        if resp.status_code == 429:
            logger.warning("Range API rate limit hit (%s)", status)
            raise RateLimitError(f"hibp rate limit exceeded: {status}")
        if resp.status_code != 200:
            raise UnexpectedResponseError(
                f"unexpected hibp response: {status}", status_code=resp.status_code
            )

        for line in resp.text.split("\n"):
            if not line:
                continue
            if line.startswith(suffix):
                return True
        return False

    def _get_within(self, url: str, headers: dict, timeout: float) -> requests.Response:
        """
        GET with a hard limit on the whole exchange.

        requests applies `timeout` to each socket read, so a server that
        trickles its body never trips it. The request runs on a daemon
        thread instead, and the caller stops waiting once `timeout` elapses;
        the abandoned request finishes (or times out) in the background.
        """
        outcome = {}

        def fetch():
            try:
                resp = self.session.get(url, headers=headers, timeout=timeout)
                resp.content  # read the body on this thread
                outcome["response"] = resp
            except Exception as exc:  # re-raised on the calling thread
                outcome["error"] = exc

        worker = threading.Thread(target=fetch, name="hibp-range-query", daemon=True)
        worker.start()
        worker.join(timeout)

        if worker.is_alive():
            raise DeadlineExceededError(
                f"hibp api request did not complete within {timeout:.2f}s"
            )
        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

"""
Retrying wrapper around a node backend.

Failures are classified from the text of the failure channel (stderr for
cast, the formatted HTTP/RPC error for JSON-RPC):

- rate limited  -> fixed pause (providers throttle by sliding window)
- retryable     -> exponential backoff: 10s, 20s, 40s, ...
- anything else -> raised immediately
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, List, Sequence

log = logging.getLogger(__name__)


# ----------------------
# Errors
# ----------------------

class AuditError(RuntimeError):
    """Base class for every failure the audit surfaces to its caller."""


class CommandFailed(AuditError):
    """A node command failed. `stderr` holds the failure text used for classification."""
    def __init__(self, args: Sequence[str], stderr: str, returncode: int | None = None):
        super().__init__(f"command {' '.join(args)!r} failed: {stderr.strip()}")
        self.command = list(args)
        self.stderr = stderr
        self.returncode = returncode


class RetryableError(CommandFailed):
    pass


class RateLimitedError(RetryableError):
    pass


class RetriesExhaustedError(AuditError):
    def __init__(self, args: Sequence[str], attempts: int, last_error: Exception):
        super().__init__(f"Failed after {attempts} retries: {' '.join(args)} ({last_error})")
        self.command = list(args)
        self.attempts = attempts
        self.last_error = last_error


# ----------------------
# Classification
# ----------------------

class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    RETRYABLE = "retryable"
    FATAL = "fatal"


RATE_LIMIT_MARKERS = (
    "HTTP error 429",
    "request rate is too high",
    "rate limit",
    "slow down",
)

RETRYABLE_MARKERS = (
    "HTTP error 500",
    "HTTP error 502",
    "HTTP error 503",
    "HTTP error 504",
    "Bad gateway",
    "Service unavailable",
    "Gateway timeout",
    "origin request failed",
    "timeout",
    "tcp connect error",
    "Network is unreachable",
    "error sending request",
    "Connect",
    "connection",
    "Connection",
)


def classify_failure(text: str) -> FailureKind:
    text = text or ""
    if any(m in text for m in RATE_LIMIT_MARKERS):
        return FailureKind.RATE_LIMITED
    if any(m in text for m in RETRYABLE_MARKERS):
        return FailureKind.RETRYABLE
    return FailureKind.FATAL


def to_classified_error(err: CommandFailed) -> CommandFailed:
    """Re-type a raw CommandFailed according to its failure text."""
    kind = classify_failure(err.stderr)
    if kind is FailureKind.RATE_LIMITED and not isinstance(err, RateLimitedError):
        return RateLimitedError(err.command, err.stderr, err.returncode)
    if kind is FailureKind.RETRYABLE and not isinstance(err, RetryableError):
        return RetryableError(err.command, err.stderr, err.returncode)
    return err


# ----------------------
# Client
# ----------------------

class RemoteCallClient:
    """
    Runs one backend command with the audit's retry policy.

    `backend` is anything with `run(args) -> str` that raises CommandFailed.
    `sleep` is injectable so the retry schedule can be observed in tests.
    """

    def __init__(
        self,
        backend,
        retries: int = 10,
        rate_limit_delay: float = 120.0,
        base_delay: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.backend = backend
        self.retries = retries
        self.rate_limit_delay = rate_limit_delay
        self.base_delay = base_delay
        self.sleep = sleep

    def delay_for(self, err: RetryableError, attempt: int) -> float:
        if isinstance(err, RateLimitedError):
            return self.rate_limit_delay
        return self.base_delay * (2 ** attempt)

    def invoke(self, args: List[str]) -> str:
        args = [str(a) for a in args]
        log.debug("[%s] $ %s", type(self.backend).__name__, " ".join(args))

        attempt = 0
        while True:
            try:
                return self.backend.run(args).strip()
            except CommandFailed as raw:
                err = to_classified_error(raw)
                if not isinstance(err, RetryableError):
                    raise

                if attempt >= self.retries - 1:
                    log.error("Giving up on %r after %d attempts: %s", args[0], attempt + 1, err.stderr.strip())
                    raise RetriesExhaustedError(args, attempt + 1, err) from err

                delay = self.delay_for(err, attempt)
                kind = "Rate limit" if isinstance(err, RateLimitedError) else "Network/RPC"
                log.warning(
                    "%s error (attempt %d/%d), retrying in %ss...",
                    kind, attempt + 1, self.retries, f"{delay:g}",
                )
                self.sleep(delay)
                attempt += 1

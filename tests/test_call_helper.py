"""Retry / backoff behaviour of the remote call client."""

from __future__ import annotations

import logging

import pytest

from commit_audit.call_helper import (
    CommandFailed,
    FailureKind,
    RateLimitedError,
    RemoteCallClient,
    RetriesExhaustedError,
    classify_failure,
)


class ScriptedBackend:
    """Fails with the given stderr texts in order, then succeeds."""

    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def run(self, args):
        self.calls += 1
        if self.failures:
            raise CommandFailed(args, self.failures.pop(0), 1)
        return self.result + "\n"


def _client(backend, delays, retries=10):
    return RemoteCallClient(backend, retries=retries, sleep=delays.append)


@pytest.mark.parametrize("text", [
    "Error: HTTP error 429 with body: too many requests",
    "request rate is too high",
    "you hit the rate limit",
    "please slow down",
])
def test_rate_limit_markers(text):
    assert classify_failure(text) is FailureKind.RATE_LIMITED


@pytest.mark.parametrize("text", [
    "HTTP error 502 with body: Bad gateway",
    "Gateway timeout",
    "tcp connect error: Connection refused",
    "error sending request for url",
    "operation timeout",
])
def test_retryable_markers(text):
    assert classify_failure(text) is FailureKind.RETRYABLE


def test_unknown_failure_is_fatal():
    assert classify_failure("execution reverted: custom error 0xfbd0656a") is FailureKind.FATAL
    assert classify_failure("") is FailureKind.FATAL


def test_success_returns_trimmed_stdout():
    delays = []
    assert _client(ScriptedBackend([], "0x01"), delays).invoke(["block-number"]) == "0x01"
    assert delays == []


def test_rate_limit_waits_120s_once():
    delays = []
    backend = ScriptedBackend(["HTTP error 429"])
    assert _client(backend, delays).invoke(["block-number"]) == "ok"
    assert delays == [120.0]
    assert backend.calls == 2


def test_gateway_timeout_backs_off_exponentially():
    delays = []
    backend = ScriptedBackend(["Gateway timeout"] * 3)
    assert _client(backend, delays).invoke(["block-number"]) == "ok"
    assert delays == [10.0, 20.0, 40.0]


def test_fatal_failure_is_not_retried():
    delays = []
    backend = ScriptedBackend(["invalid address"])
    with pytest.raises(CommandFailed) as exc:
        _client(backend, delays).invoke(["code", "0xnope"])
    assert not isinstance(exc.value, RateLimitedError)
    assert backend.calls == 1
    assert delays == []


def test_exhausted_retries_raise_terminal_error():
    delays = []
    backend = ScriptedBackend(["HTTP error 503"] * 20)
    with pytest.raises(RetriesExhaustedError) as exc:
        _client(backend, delays).invoke(["block-number"])
    assert backend.calls == 10
    assert exc.value.attempts == 10
    assert "Failed after" in str(exc.value)
    # no pause after the final attempt
    assert len(delays) == 9
    assert delays[-1] == 10.0 * 2 ** 8


def test_rate_limit_then_transport_mix():
    delays = []
    backend = ScriptedBackend(["slow down", "connection reset", "slow down"])
    _client(backend, delays).invoke(["block-number"])
    assert delays == [120.0, 20.0, 120.0]


def test_commands_are_logged_with_backend_name(caplog):
    with caplog.at_level(logging.DEBUG, logger="commit_audit.call_helper"):
        _client(ScriptedBackend([]), []).invoke(["block-number"])
    assert "[ScriptedBackend] $ block-number" in caplog.text
    assert "cast" not in caplog.text

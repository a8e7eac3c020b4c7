"""getRevealIdx() outcome classification."""

from __future__ import annotations

import pytest

from commit_audit.call_helper import CommandFailed, RetriesExhaustedError
from commit_audit.status import (
    INVALID_COMMIT_SELECTOR,
    NO_COMMIT_SELECTOR,
    CommitmentStatus,
    StatusKind,
    classify,
    classify_failure_text,
    classify_result,
    interpret_with_context,
)

from conftest import CONTRACT, USER_A, make_node, word


def test_32_byte_result_is_pending_with_index():
    assert classify_result(word(3)) == CommitmentStatus(StatusKind.PENDING_REVEAL, reveal_index="3")


def test_exact_selectors():
    assert classify_result(NO_COMMIT_SELECTOR).kind is StatusKind.REVEALED
    assert classify_result(INVALID_COMMIT_SELECTOR).kind is StatusKind.EXPIRED_REFUNDABLE


def test_wrapped_selectors_match_by_substring():
    wrapped = "0x08c379a0" + "00" * 31 + "20" + "b7b33787" + "00" * 28
    assert classify_result(wrapped).kind is StatusKind.EXPIRED_REFUNDABLE
    padded = NO_COMMIT_SELECTOR + "00" * 32
    assert classify_result(padded).kind is StatusKind.REVEALED


def test_error_string_word_is_not_a_reveal_index():
    text = "0x08c379a0" + "00" * 28
    assert len(text) == 66
    assert classify_result(text).kind is StatusKind.NO_COMMIT


def test_unrecognised_result_defaults_to_no_commit():
    assert classify_result("").kind is StatusKind.NO_COMMIT
    assert classify_result("0x1234").kind is StatusKind.NO_COMMIT


@pytest.mark.parametrize("text, kind", [
    ("Error: execution reverted: custom error 0xfbd0656a", StatusKind.REVEALED),
    ("server returned an error response: error code 3: execution reverted, data: 0xb7b33787",
     StatusKind.EXPIRED_REFUNDABLE),
    ("execution reverted: NoCommit()", StatusKind.REVEALED),
    ("execution reverted: invalid commit", StatusKind.EXPIRED_REFUNDABLE),
    ("execution reverted: AllPacksOpened()", StatusKind.NO_COMMIT),
    ("execution reverted: all items opened", StatusKind.NO_COMMIT),
    ("something else entirely", StatusKind.NO_COMMIT),
])
def test_failure_text(text, kind):
    assert classify_failure_text(text).kind is kind


def test_no_commit_with_prior_commit_means_revealed():
    no_commit = CommitmentStatus(StatusKind.NO_COMMIT)
    assert interpret_with_context(no_commit, has_prior_commit=True).kind is StatusKind.REVEALED
    assert interpret_with_context(no_commit, has_prior_commit=False).kind is StatusKind.NO_COMMIT


def test_classify_pending(fx):
    fx.set_reveal_index(USER_A, 5, 3)
    assert classify(fx.node, CONTRACT, USER_A, "5") == CommitmentStatus(StatusKind.PENDING_REVEAL, "3")


def test_classify_no_commit_selector_is_revealed(fx):
    fx.set_revert(USER_A, 5, "execution reverted: custom error 0xfbd0656a")
    status = interpret_with_context(classify(fx.node, CONTRACT, USER_A, "5"), has_prior_commit=True)
    assert status.kind is StatusKind.REVEALED


def test_classify_expired(fx):
    fx.set_revert(USER_A, 5, "execution reverted: custom error 0xb7b33787")
    assert classify(fx.node, CONTRACT, USER_A, "5").kind is StatusKind.EXPIRED_REFUNDABLE


def test_transport_outage_is_not_a_status(chain):
    class Down:
        def run(self, args):
            if args[0] == "call":
                raise CommandFailed(args, "HTTP error 503")
            return chain.run(args)

    node = make_node(Down())
    with pytest.raises(RetriesExhaustedError):
        classify(node, CONTRACT, USER_A, "5")

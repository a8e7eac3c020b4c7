"""
Commitment status via the contract's getRevealIdx(address,uint256) view.

    success (uint256)       -> pending reveal, with its reveal index
    revert NoCommit()       -> revealed   (slot deleted on reveal)
    revert InvalidCommit()  -> expired, refundable

NoCommit() is also what a never-committed key returns. The contract cannot
tell the two apart; callers holding a Commit event for the key should read it
as "revealed" (see interpret_with_context).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .call_helper import CommandFailed

log = logging.getLogger(__name__)

REVEAL_INDEX_SIGNATURE = "getRevealIdx(address,uint256)"

NO_COMMIT_SELECTOR = "0xfbd0656a"        # NoCommit()
INVALID_COMMIT_SELECTOR = "0xb7b33787"   # InvalidCommit()
ERROR_STRING_SELECTOR = "0x08c379a0"     # Error(string)


class StatusKind(str, Enum):
    PENDING_REVEAL = "pending_reveal"
    REVEALED = "revealed"
    EXPIRED_REFUNDABLE = "expired_refund"
    NO_COMMIT = "no_commit"


@dataclass(frozen=True)
class CommitmentStatus:
    kind: StatusKind
    reveal_index: Optional[str] = None


REVEALED = CommitmentStatus(StatusKind.REVEALED)
EXPIRED_REFUNDABLE = CommitmentStatus(StatusKind.EXPIRED_REFUNDABLE)
NO_COMMIT = CommitmentStatus(StatusKind.NO_COMMIT)


def _selector_status(text: str) -> Optional[CommitmentStatus]:
    if NO_COMMIT_SELECTOR[2:] in text:
        return REVEALED
    if INVALID_COMMIT_SELECTOR[2:] in text:
        return EXPIRED_REFUNDABLE
    return None


def classify_result(text: str) -> CommitmentStatus:
    """Classify the stdout of a successful call."""
    text = (text or "").strip().lower()

    if text.startswith("0x") and len(text) == 66 and ERROR_STRING_SELECTOR not in text:
        return CommitmentStatus(StatusKind.PENDING_REVEAL, reveal_index=str(int(text, 16)))

    if text == NO_COMMIT_SELECTOR:
        return REVEALED
    if text == INVALID_COMMIT_SELECTOR:
        return EXPIRED_REFUNDABLE

    # longer revert encodings (Error(string) wrapper or padded custom error)
    return _selector_status(text) or NO_COMMIT


def classify_failure_text(text: str) -> CommitmentStatus:
    """Best-effort classification of a failed call from its error text."""
    text = text or ""
    status = _selector_status(text.lower())
    if status is not None:
        return status

    lowered = text.lower()
    if "nocommit" in lowered or "no commit" in lowered:
        return REVEALED
    if "invalidcommit" in lowered or "invalid commit" in lowered:
        return EXPIRED_REFUNDABLE
    # AllPacksOpened / AllItemsOpened and anything unrecognised
    return NO_COMMIT


def classify(node, address: str, user: str, item_id: str) -> CommitmentStatus:
    """
    Call getRevealIdx(user, itemId) and map the outcome to a status.

    Reverts come back as CommandFailed and are classified by their text.
    RetriesExhaustedError is not caught: an unreachable node is not a status.
    """
    calldata = node.calldata(REVEAL_INDEX_SIGNATURE, user, item_id)
    try:
        result = node.call(address, calldata)
    except CommandFailed as e:
        status = classify_failure_text(e.stderr)
        log.debug("    getRevealIdx reverted for %s/%s -> %s", user, item_id, status.kind.value)
        return status
    return classify_result(result)


def interpret_with_context(status: CommitmentStatus, has_prior_commit: bool) -> CommitmentStatus:
    """With a known prior Commit, 'no commitment' can only mean it was revealed."""
    if has_prior_commit and status.kind is StatusKind.NO_COMMIT:
        return REVEALED
    return status

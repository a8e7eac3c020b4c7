"""
Reconciliation of Commit events against reveals, storage and getRevealIdx().

Per (user, itemId) key only the latest Commit counts. Each retained commit
ends in exactly one of: pending reveal, refund eligible, revealed.

The pipeline never prints; progress is published as PipelineEvent objects
to an optional observer (see observers.py).
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .call_helper import RetriesExhaustedError
from .events import CommitEvent, RevealEvent, fetch_commit_events, fetch_reveal_events
from .status import StatusKind, classify, interpret_with_context
from .storage import DEFAULT_COMMITMENTS_SLOT, LayoutVersion, check_commitment_pending

CommitKey = Tuple[str, str]


class Strategy(str, Enum):
    EVENT_DIFF = "event_diff"       # fetch Reveal logs and diff against commits
    DIRECT_QUERY = "direct_query"   # skip Reveal logs, ask getRevealIdx() per commit


@dataclass(frozen=True)
class PipelineEvent:
    kind: str
    data: dict = field(default_factory=dict)


# ----------------------
# Report rows
# ----------------------

@dataclass(frozen=True)
class PendingCommit:
    user: str
    item_id: str
    layout_version: LayoutVersion
    commit_tx_hash: str
    commit_block_number: int
    reveal_index: str

    def to_dict(self) -> dict:
        return {
            "user": self.user,
            "itemId": self.item_id,
            "commitLayoutVersion": self.layout_version.value,
            "commitTxHash": self.commit_tx_hash,
            "commitBlockNumber": self.commit_block_number,
            "revealIndex": self.reveal_index,
        }


@dataclass(frozen=True)
class RefundEligible:
    user: str
    item_id: str
    layout_version: LayoutVersion
    commit_tx_hash: str
    commit_block_number: int

    def to_dict(self) -> dict:
        return {
            "user": self.user,
            "itemId": self.item_id,
            "commitLayoutVersion": self.layout_version.value,
            "commitTxHash": self.commit_tx_hash,
            "commitBlockNumber": self.commit_block_number,
        }


@dataclass(frozen=True)
class Checkpoint:
    block_number: int
    tx_hash: str


def _row_order(row) -> tuple:
    return (row.commit_block_number, row.user, int(row.item_id))


@dataclass
class AuditReport:
    pending_reveals: List[PendingCommit]
    refund_eligible: List[RefundEligible]
    revealed: List[CommitEvent]
    checkpoint: Optional[Checkpoint]

    def to_dict(self) -> dict:
        return {
            "pendingReveals": [r.to_dict() for r in sorted(self.pending_reveals, key=_row_order)],
            "refundEligible": [r.to_dict() for r in sorted(self.refund_eligible, key=_row_order)],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


# ----------------------
# Pure steps
# ----------------------

def latest_commits(events: Iterable[CommitEvent]) -> Dict[CommitKey, CommitEvent]:
    """Keep the highest-block commit per key; superseded commits are dropped."""
    latest: Dict[CommitKey, CommitEvent] = {}
    for e in events:
        cur = latest.get(e.key)
        if cur is None or e.block_number > cur.block_number:
            latest[e.key] = e
    return latest


def split_revealed(
    latest: Dict[CommitKey, CommitEvent],
    reveals: Iterable[RevealEvent],
) -> Tuple[List[CommitEvent], List[CommitEvent]]:
    """A commit is revealed if a reveal for its key lands in a strictly later block."""
    last_reveal: Dict[CommitKey, int] = {}
    for r in reveals:
        key = (r.user.lower(), r.item_id)
        if r.block_number > last_reveal.get(key, -1):
            last_reveal[key] = r.block_number

    unrevealed, revealed = [], []
    for commit in _ordered(latest.values()):
        if last_reveal.get(commit.key, -1) > commit.block_number:
            revealed.append(commit)
        else:
            unrevealed.append(commit)
    return unrevealed, revealed


def earliest_checkpoint(rows: Iterable) -> Optional[Checkpoint]:
    best = min(rows, key=lambda r: (r.commit_block_number, r.commit_tx_hash), default=None)
    if best is None:
        return None
    return Checkpoint(best.commit_block_number, best.commit_tx_hash)


def _ordered(commits: Iterable[CommitEvent]) -> List[CommitEvent]:
    return sorted(commits, key=lambda c: (c.block_number, c.user, int(c.item_id)))


# ----------------------
# Orchestration
# ----------------------

class Reconciler:
    def __init__(
        self,
        node,
        address: str,
        base_slot: int = DEFAULT_COMMITMENTS_SLOT,
        strategy: Strategy = Strategy.EVENT_DIFF,
        chunk_size: Optional[int] = None,
        observer: Optional[Callable[[PipelineEvent], None]] = None,
    ):
        self.node = node
        self.address = address
        self.base_slot = base_slot
        self.strategy = strategy
        self.chunk_size = chunk_size
        self.observer = observer

    def _emit(self, kind: str, **data) -> None:
        if self.observer is not None:
            self.observer(PipelineEvent(kind, data))

    def _progress(self, stream: str):
        def report(done: int, total: int) -> None:
            self._emit("fetch_progress", stream=stream, done=done, total=total)
        return report

    def run(self, from_block: int, to_block: int) -> AuditReport:
        commits = fetch_commit_events(self.node, self.address, from_block, to_block,
                                      chunk_size=self.chunk_size, on_progress=self._progress("commits"))
        self._emit("commits_fetched", commits=commits, from_block=from_block, to_block=to_block)

        latest = latest_commits(commits)
        self._emit("commits_deduplicated", commits=_ordered(latest.values()))

        if self.strategy is Strategy.DIRECT_QUERY:
            pending, refund, revealed = self._direct_query(latest)
        else:
            pending, refund, revealed = self._event_diff(latest, to_block)

        report = AuditReport(
            pending_reveals=pending,
            refund_eligible=refund,
            revealed=revealed,
            checkpoint=earliest_checkpoint([*pending, *refund]),
        )
        self._emit("report_ready", report=report)
        return report

    def _fetch_reveals(self, latest: Dict[CommitKey, CommitEvent], to_block: int) -> List[RevealEvent]:
        valid_blocks = [c.block_number for c in latest.values() if c.block_number > 0]
        if not valid_blocks:
            return []
        from_block = min(valid_blocks)
        try:
            reveals = fetch_reveal_events(self.node, self.address, from_block, to_block,
                                          chunk_size=self.chunk_size, on_progress=self._progress("reveals"))
        except RetriesExhaustedError as e:
            # storage + getRevealIdx still filter out revealed commits below
            self._emit("reveal_fetch_failed", error=str(e), from_block=from_block, to_block=to_block)
            return []
        self._emit("reveals_fetched", count=len(reveals), from_block=from_block, to_block=to_block)
        return reveals

    def _event_diff(self, latest, to_block):
        reveals = self._fetch_reveals(latest, to_block)
        unrevealed, revealed = split_revealed(latest, reveals)
        self._emit("reveals_filtered", unrevealed=len(unrevealed), revealed=len(revealed))

        pending: List[PendingCommit] = []
        refund: List[RefundEligible] = []
        for i, commit in enumerate(unrevealed, 1):
            self._emit("commit_checking", index=i, total=len(unrevealed), commit=commit)

            check = check_commitment_pending(self.node, self.address, commit.user, commit.item_id, self.base_slot)
            if not check.pending:
                revealed.append(commit)
                self._emit("commit_classified", commit=commit, outcome="missing")
                continue

            status = interpret_with_context(
                classify(self.node, self.address, commit.user, commit.item_id), has_prior_commit=True
            )
            self._route(commit, status, check.version, pending, refund, revealed)
        return pending, refund, revealed

    def _direct_query(self, latest):
        pending: List[PendingCommit] = []
        refund: List[RefundEligible] = []
        revealed: List[CommitEvent] = []
        commits = _ordered(latest.values())
        for i, commit in enumerate(commits, 1):
            self._emit("commit_checking", index=i, total=len(commits), commit=commit)

            status = interpret_with_context(
                classify(self.node, self.address, commit.user, commit.item_id), has_prior_commit=True
            )
            version = None
            if status.kind in (StatusKind.PENDING_REVEAL, StatusKind.EXPIRED_REFUNDABLE):
                check = check_commitment_pending(self.node, self.address, commit.user, commit.item_id, self.base_slot)
                # the call already proved the commitment exists; v1 is the live layout
                version = check.version or LayoutVersion.V1
            self._route(commit, status, version, pending, refund, revealed)
        return pending, refund, revealed

    def _route(self, commit, status, version, pending, refund, revealed) -> None:
        if status.kind is StatusKind.PENDING_REVEAL:
            pending.append(PendingCommit(
                user=commit.user, item_id=commit.item_id, layout_version=version,
                commit_tx_hash=commit.tx_hash, commit_block_number=commit.block_number,
                reveal_index=status.reveal_index,
            ))
            outcome = "pending"
        elif status.kind is StatusKind.EXPIRED_REFUNDABLE:
            refund.append(RefundEligible(
                user=commit.user, item_id=commit.item_id, layout_version=version,
                commit_tx_hash=commit.tx_hash, commit_block_number=commit.block_number,
            ))
            outcome = "refund"
        else:
            revealed.append(commit)
            outcome = "revealed"
        self._emit("commit_classified", commit=commit, outcome=outcome, status=status, version=version)

"""Diagnostic output for the reconciliation pipeline: PipelineEvent -> log lines (stderr)."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from .pipeline import PipelineEvent

log = logging.getLogger("commit_audit")


def _log_by_address(title: str, commits: Iterable) -> None:
    by_user = defaultdict(list)
    for c in commits:
        by_user[c.user].append(c)
    log.info(title)
    for user, evts in by_user.items():
        item_ids = ", ".join(e.item_id for e in evts)
        tx_hashes = ", ".join(e.tx_hash for e in evts)
        log.info("  %s: %d commit(s) - itemIds: %s - txHashes: %s", user, len(evts), item_ids, tx_hashes)


class LoggingObserver:
    def __call__(self, event: PipelineEvent) -> None:
        handler = getattr(self, f"on_{event.kind}", None)
        if handler is not None:
            handler(**event.data)

    def on_fetch_progress(self, stream, done, total):
        log.debug("%s: %d/%d chunks fetched", stream, done, total)

    def on_commits_fetched(self, commits, from_block, to_block):
        log.info("Found %d Commit events in blocks %d-%d", len(commits), from_block, to_block)
        _log_by_address("Commits by address:", commits)

    def on_commits_deduplicated(self, commits):
        log.info("After deduplication: %d unique commits", len(commits))
        _log_by_address("Commits to check by address:", commits)

    def on_reveals_fetched(self, count, from_block, to_block):
        log.info("Found %d Reveal events in blocks %d-%d", count, from_block, to_block)

    def on_reveal_fetch_failed(self, error, from_block, to_block):
        log.warning("Error fetching Reveal events for blocks %d-%d: %s", from_block, to_block, error)
        log.warning("  This is likely due to the large block range (%d blocks).", to_block - from_block)
        log.warning("  Tip: use --skip-reveal-events to query getRevealIdx() directly instead.")
        log.warning("  Continuing without Reveal events...")

    def on_reveals_filtered(self, unrevealed, revealed):
        log.info("After filtering reveals: %d unrevealed commits, %d revealed commits", unrevealed, revealed)

    def on_commit_checking(self, index, total, commit):
        log.info("  [%d/%d] Checking %s itemId %s...", index, total, commit.user, commit.item_id)

    def on_commit_classified(self, commit, outcome, status=None, version=None):
        if outcome == "pending":
            log.info("    Pending reveal (revealIdx: %s, layout: %s)", status.reveal_index, version.value)
        elif outcome == "refund":
            log.info("    Expired, ready for refund (layout: %s)", version.value)
        elif outcome == "missing":
            log.info("    No pending commit found in storage")
        else:
            log.info("    Already revealed (commitment deleted)")

    def on_report_ready(self, report):
        if report.revealed:
            _log_by_address("Revealed commits by address:", report.revealed)
        log.info("Found %d pending commits ready for reveal", len(report.pending_reveals))
        log.info("Found %d commits ready for refund", len(report.refund_eligible))

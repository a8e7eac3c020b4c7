from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .call_helper import RemoteCallClient
from .backends import make_backend
from .config import BASE_RETRY_DELAY, CAST_BINARY, MAX_RETRIES, RATE_LIMIT_DELAY
from .deployment import DeploymentNotFoundError, has_code, locate_deployment_block
from .node import NodeClient
from .observers import LoggingObserver
from .pipeline import AuditReport, Reconciler, Strategy
from .storage import DEFAULT_COMMITMENTS_SLOT

log = logging.getLogger(__name__)

LARGE_RANGE_BLOCKS = 100_000


@dataclass
class AuditResult:
    report: AuditReport
    from_block: int
    to_block: int
    next_from_block: Optional[int]


def build_node(rpc_url: str, backend: str = "rpc") -> NodeClient:
    client = RemoteCallClient(
        make_backend(backend, rpc_url, cast_binary=CAST_BINARY),
        retries=MAX_RETRIES,
        rate_limit_delay=RATE_LIMIT_DELAY,
        base_delay=BASE_RETRY_DELAY,
    )
    return NodeClient(client)


def next_from_block_hint(report: AuditReport, from_block: int, to_block: int) -> Optional[int]:
    """Suggested --from-block for the next run (earliest still-open commit, or head if nothing is open)."""
    if report.checkpoint is not None and report.checkpoint.block_number != from_block:
        return report.checkpoint.block_number
    if not report.pending_reveals and not report.refund_eligible and to_block != from_block:
        return to_block
    return None


def run_audit(
    node: NodeClient,
    address: str,
    from_block: Optional[int] = None,
    to_block: Optional[int] = None,
    chunk_size: Optional[int] = None,
    strategy: Strategy = Strategy.EVENT_DIFF,
    base_slot: int = DEFAULT_COMMITMENTS_SLOT,
    observer=None,
) -> AuditResult:
    if to_block is None:
        to_block = node.latest_block()

    auto_located = from_block is None
    if auto_located:
        # raises DeploymentNotFoundError when there is no code at the head block
        from_block = locate_deployment_block(node, address, to_block)
        log.info("Tip: for faster runs, use --from-block %d next time", from_block)
    elif not has_code(node.code_at(address, to_block)):
        raise DeploymentNotFoundError(f"Contract {address} does not exist at block {to_block}")

    if from_block > to_block:
        raise ValueError(f"from_block {from_block} is after to_block {to_block}")

    block_range = to_block - from_block
    if block_range > LARGE_RANGE_BLOCKS:
        log.warning("Large block range detected (%d blocks). This may cause RPC timeouts.", block_range)
        if auto_located:
            log.warning("  Consider --from-block to limit the range, e.g. --from-block %d for the last 100k blocks.",
                        to_block - LARGE_RANGE_BLOCKS)

    log.info("Fetching Commit events from block %d to %d...", from_block, to_block)
    reconciler = Reconciler(
        node,
        address,
        base_slot=base_slot,
        strategy=strategy,
        chunk_size=chunk_size,
        observer=observer if observer is not None else LoggingObserver(),
    )
    report = reconciler.run(from_block, to_block)

    hint = next_from_block_hint(report, from_block, to_block)
    if hint is not None:
        log.info("Tip: use --from-block %d for faster future runs", hint)

    return AuditResult(report=report, from_block=from_block, to_block=to_block, next_from_block=hint)

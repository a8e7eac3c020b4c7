from __future__ import annotations

import logging

from .call_helper import AuditError

log = logging.getLogger(__name__)


class DeploymentNotFoundError(AuditError):
    pass


def has_code(code: str) -> bool:
    code = (code or "").strip()
    return code not in ("", "0x")


def locate_deployment_block(node, address: str, latest_block: int) -> int:
    """
    Binary-search the first block at which `address` has bytecode.

    Assumes code, once deployed, exists at every later block (no selfdestruct).
    One remote call per probe, O(log latest_block) probes.
    """
    log.info("Finding contract deployment block...")

    if not has_code(node.code_at(address, latest_block)):
        raise DeploymentNotFoundError(f"Contract {address} does not exist at block {latest_block}")

    low, high = 1, latest_block
    deployment_block = latest_block
    log.info("  Searching between block 1 and %d...", latest_block)

    iterations = 0
    while low <= high:
        mid = (low + high) // 2
        if has_code(node.code_at(address, mid)):
            deployment_block = mid
            high = mid - 1
        else:
            low = mid + 1

        iterations += 1
        if iterations % 5 == 0:
            log.info("    Checking block %d (range: %d-%d)...", mid, low, high)

    log.info("  Contract deployed at block %d", deployment_block)
    return deployment_block

"""
Storage-slot verification for the commitments mapping.

Two historical layouts of the same relation exist on-chain:

    v0: mapping(address => mapping(uint256 => uint256))   _commitments[user][itemId]
    v1: mapping(uint256 => mapping(address => uint256))   _commitments[itemId][user]

Solidity places m[k] at keccak256(abi.encode(k, p)) where p is the slot of m.
The key order differs between layouts, so each gets its own derivation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

log = logging.getLogger(__name__)

DEFAULT_COMMITMENTS_SLOT = 15


class LayoutVersion(str, Enum):
    V0 = "v0"
    V1 = "v1"


@dataclass(frozen=True)
class PendingCheck:
    pending: bool
    version: Optional[LayoutVersion]


def is_zero_word(value: str) -> bool:
    value = (value or "").strip().lower()
    if value in ("", "0x"):
        return True
    try:
        return int(value, 16) == 0
    except ValueError:
        log.warning("Malformed storage value %r, treating as empty", value)
        return True


def slot_v0(node, user: str, item_id: str, base_slot: int) -> str:
    # _commitments[user][itemId]
    outer = node.keccak256(node.abi_encode("encode(address,uint256)", user, base_slot))
    outer_num = int(outer, 16)
    return node.keccak256(node.abi_encode("encode(uint256,uint256)", item_id, outer_num))


def slot_v1(node, item_id: str, user: str, base_slot: int) -> str:
    # _commitments[itemId][user]
    outer = node.keccak256(node.abi_encode("encode(uint256,uint256)", item_id, base_slot))
    outer_num = int(outer, 16)
    return node.keccak256(node.abi_encode("encode(address,uint256)", user, outer_num))


def resolve_slot(node, version: LayoutVersion, user: str, item_id: str, base_slot: int) -> str:
    if version is LayoutVersion.V0:
        return slot_v0(node, user, item_id, base_slot)
    if version is LayoutVersion.V1:
        return slot_v1(node, item_id, user, base_slot)
    raise ValueError(f"Unknown layout version: {version!r}")


def check_commitment_pending(node, address: str, user: str, item_id: str,
                             base_slot: int = DEFAULT_COMMITMENTS_SLOT) -> PendingCheck:
    """
    Probe the live layout (v1) first, then the pre-upgrade layout (v0).
    An all-zero word means no commitment under that layout.
    """
    s1 = resolve_slot(node, LayoutVersion.V1, user, item_id, base_slot)
    v1 = node.storage_at(address, s1)
    if not is_zero_word(v1):
        log.debug("    Found pending commit (v1) at slot %s, value: %s", s1, v1)
        return PendingCheck(True, LayoutVersion.V1)

    s0 = resolve_slot(node, LayoutVersion.V0, user, item_id, base_slot)
    v0 = node.storage_at(address, s0)
    if not is_zero_word(v0):
        log.debug("    Found pending commit (v0) at slot %s, value: %s", s0, v0)
        return PendingCheck(True, LayoutVersion.V0)

    log.debug("    No pending commit found (v1 slot: %s, v0 slot: %s)", s1, s0)
    return PendingCheck(False, None)

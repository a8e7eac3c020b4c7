"""
Commit / Reveal event retrieval and decoding.

- Resolves topic0 for each event signature through the node.
- Splits large ranges into fixed windows, fetched 10 at a time.
- Decodes raw log objects; malformed records are skipped with a warning.

    Commit(address indexed user, uint256 indexed itemId)   -> topics[1], topics[2]
    Reveal(address user, uint256 itemId)                   -> data words 0 and 1
"""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

log = logging.getLogger(__name__)

COMMIT_SIGNATURE = "Commit(address,uint256)"
REVEAL_SIGNATURE = "Reveal(address,uint256)"

# Windows fetched concurrently per batch
FETCH_BATCH_SIZE = 10

# ----------------------
# Data models
# ----------------------

@dataclass(frozen=True)
class CommitEvent:
    user: str               # lowercase 0x address
    item_id: str            # uint256 as decimal text
    block_number: int
    tx_hash: str

    @property
    def key(self) -> Tuple[str, str]:
        return (self.user, self.item_id)


@dataclass(frozen=True)
class RevealEvent:
    user: str
    item_id: str
    block_number: int

    @property
    def key(self) -> Tuple[str, str]:
        return (self.user, self.item_id)


# ----------------------
# Payload parsing
# ----------------------

def parse_log_payload(text: str) -> List[dict]:
    """
    Accept a JSON array, a single JSON object or newline-delimited JSON objects.
    Anything else yields [] plus a warning.
    """
    text = (text or "").strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except ValueError:
        try:
            parsed = [json.loads(line) for line in text.splitlines() if line.strip()]
        except ValueError as e:
            log.warning("Failed to parse logs as JSON: %s", e)
            return []

    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list):
        log.warning("Unexpected log payload type %s, ignoring", type(parsed).__name__)
        return []
    return [lg for lg in parsed if isinstance(lg, dict)]


def _block_number(lg: dict) -> Optional[int]:
    raw = lg.get("blockNumber")
    if not raw:
        return 0
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw), 16)  # always hex in JSON-RPC
    except ValueError:
        return None


def parse_commit_logs(payload: str) -> List[CommitEvent]:
    events: List[CommitEvent] = []
    for lg in parse_log_payload(payload):
        block_number = _block_number(lg)
        if block_number is None:
            log.warning("Invalid block number in log, skipping: %s", json.dumps(lg))
            continue

        tx_hash = lg.get("transactionHash") or lg.get("hash") or ""
        if not isinstance(tx_hash, str) or not tx_hash.startswith("0x"):
            log.warning("Invalid transaction hash in log, skipping: %s", json.dumps(lg))
            continue

        topics = lg.get("topics") or []
        if len(topics) < 2:
            log.warning("Missing topics in log, skipping: %s", json.dumps(lg))
            continue

        user_topic = topics[1]
        if not isinstance(user_topic, str) or len(user_topic) < 66:
            log.warning("Invalid user topic in log, skipping: %s", json.dumps(lg))
            continue
        user = "0x" + user_topic[-40:].lower()

        # itemId 0 may come without a topic
        item_topic = topics[2] if len(topics) > 2 and topics[2] else "0x0"
        try:
            item_id = str(int(item_topic, 16))
        except (TypeError, ValueError):
            log.warning("Invalid itemId topic %r, using 0", item_topic)
            item_id = "0"

        events.append(CommitEvent(user=user, item_id=item_id, block_number=block_number, tx_hash=tx_hash))
    return events


def parse_reveal_logs(payload: str) -> List[RevealEvent]:
    events: List[RevealEvent] = []
    for lg in parse_log_payload(payload):
        block_number = _block_number(lg)
        if block_number is None:
            log.warning("Invalid block number in reveal log, skipping: %s", json.dumps(lg))
            continue

        data = lg.get("data") or "0x"
        if not isinstance(data, str) or len(data) < 2 + 128:
            log.warning("Invalid data in reveal log, skipping: %s", json.dumps(lg))
            continue

        try:
            user = "0x" + data[26:66].lower()
            item_id = str(int(data[66:130], 16))
        except ValueError as e:
            log.warning("Failed to decode reveal log %s: %s", json.dumps(lg), e)
            continue

        events.append(RevealEvent(user=user, item_id=item_id, block_number=block_number))
    return events


# ----------------------
# Block-window fetching
# ----------------------

def chunk_ranges(from_block: int, to_block: int, chunk_size: int) -> List[Tuple[int, int]]:
    windows = []
    cur = from_block
    while cur <= to_block:
        hi = min(cur + chunk_size - 1, to_block)
        windows.append((cur, hi))
        cur = hi + 1
    return windows


def _fetch_events(
    node,
    address: str,
    signature: str,
    parse: Callable[[str], list],
    from_block: int,
    to_block: int,
    chunk_size: Optional[int],
    on_progress: Optional[Callable[[int, int], None]],
) -> list:
    topic0 = node.event_topic(signature)

    if not chunk_size or to_block - from_block + 1 <= chunk_size:
        payload = node.logs(address, topic0, from_block, to_block)
        return parse(payload) if payload else []

    windows = chunk_ranges(from_block, to_block, chunk_size)
    total = len(windows)
    log.info("  Chunking log requests: %d blocks in chunks of %d...", to_block - from_block + 1, chunk_size)

    def fetch_window(window: Tuple[int, int]) -> list:
        a, b = window
        log.debug("  Fetching blocks %d to %d...", a, b)
        payload = node.logs(address, topic0, a, b)
        return parse(payload) if payload else []

    events: list = []
    done = 0
    with ThreadPoolExecutor(max_workers=FETCH_BATCH_SIZE) as pool:
        for i in range(0, total, FETCH_BATCH_SIZE):
            batch = windows[i:i + FETCH_BATCH_SIZE]
            # the whole batch completes before any of it is consumed
            for window_events in list(pool.map(fetch_window, batch)):
                events.extend(window_events)
            done += len(batch)
            log.info("  Processed %d/%d chunks", done, total)
            if on_progress:
                on_progress(done, total)
    return events


def fetch_commit_events(node, address, from_block, to_block, chunk_size=None, on_progress=None) -> List[CommitEvent]:
    return _fetch_events(node, address, COMMIT_SIGNATURE, parse_commit_logs,
                         from_block, to_block, chunk_size, on_progress)


def fetch_reveal_events(node, address, from_block, to_block, chunk_size=None, on_progress=None) -> List[RevealEvent]:
    return _fetch_events(node, address, REVEAL_SIGNATURE, parse_reveal_logs,
                         from_block, to_block, chunk_size, on_progress)

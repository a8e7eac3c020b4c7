"""Shared fakes: an in-memory chain behind the real call client and node surface."""

from __future__ import annotations

import json

import pytest

from commit_audit.backends import JsonRpcBackend
from commit_audit.call_helper import CommandFailed, RemoteCallClient
from commit_audit.events import COMMIT_SIGNATURE, REVEAL_SIGNATURE
from commit_audit.node import NodeClient
from commit_audit.status import REVEAL_INDEX_SIGNATURE
from commit_audit.storage import slot_v0, slot_v1

CONTRACT = "0x" + "cc" * 20
USER_A = "0x" + "aa" * 20
USER_B = "0x" + "bb" * 20


def word(value: int) -> str:
    return "0x" + format(value, "064x")


class FakeChain:
    """
    Serves network commands from dicts; encoding/hashing primitives are
    delegated to JsonRpcBackend (computed locally, no HTTP).
    """

    def __init__(self, head: int = 1_000, deployed_at: int = 1):
        self.head = head
        self.deployed_at = deployed_at
        self.logs = []
        self.storage = {}
        self.calls = {}
        self.commands = []
        self._local = JsonRpcBackend("http://unused.invalid")

    def run(self, args):
        self.commands.append(list(args))
        cmd = args[0]
        if cmd == "block-number":
            return str(self.head)
        if cmd == "code":
            block = int(args[args.index("--block") + 1]) if "--block" in args else self.head
            return "0x6080604052" if block >= self.deployed_at else "0x"
        if cmd == "logs":
            lo = int(args[args.index("--from-block") + 1])
            hi = int(args[args.index("--to-block") + 1])
            topic0 = args[-1]
            out = [
                lg for lg in self.logs
                if lg["topics"][0] == topic0 and lo <= int(lg["blockNumber"], 16) <= hi
            ]
            return json.dumps(out)
        if cmd == "storage":
            return self.storage.get(args[2].lower(), "0x" + "00" * 32)
        if cmd == "call":
            outcome = self.calls.get(args[2].lower())
            if outcome is None:
                raise CommandFailed(args, "execution reverted: custom error 0xfbd0656a")
            ok, text = outcome
            if not ok:
                raise CommandFailed(args, text)
            return text
        return self._local.run(args)


class Fixture:
    def __init__(self, chain: FakeChain, node: NodeClient):
        self.chain = chain
        self.node = node
        self.commit_topic = node.event_topic(COMMIT_SIGNATURE)
        self.reveal_topic = node.event_topic(REVEAL_SIGNATURE)
        self._tx = 0

    def add_commit(self, user: str, item_id: int, block: int, tx_hash: str | None = None) -> str:
        self._tx += 1
        tx_hash = tx_hash or word(self._tx)
        self.chain.logs.append({
            "address": CONTRACT,
            "blockNumber": hex(block),
            "transactionHash": tx_hash,
            "topics": [self.commit_topic, "0x" + "00" * 12 + user[2:], word(item_id)],
            "data": "0x",
        })
        return tx_hash

    def add_reveal(self, user: str, item_id: int, block: int) -> None:
        self._tx += 1
        self.chain.logs.append({
            "address": CONTRACT,
            "blockNumber": hex(block),
            "transactionHash": word(10_000 + self._tx),
            "topics": [self.reveal_topic],
            "data": "0x" + "00" * 12 + user[2:] + format(item_id, "064x"),
        })

    def set_storage_v1(self, user: str, item_id: int, value: int = 1, base_slot: int = 15) -> None:
        slot = slot_v1(self.node, str(item_id), user, base_slot)
        self.chain.storage[slot.lower()] = word(value)

    def set_storage_v0(self, user: str, item_id: int, value: int = 1, base_slot: int = 15) -> None:
        slot = slot_v0(self.node, user, str(item_id), base_slot)
        self.chain.storage[slot.lower()] = word(value)

    def _calldata(self, user: str, item_id: int) -> str:
        return self.node.calldata(REVEAL_INDEX_SIGNATURE, user, item_id).lower()

    def set_reveal_index(self, user: str, item_id: int, reveal_index: int) -> None:
        self.chain.calls[self._calldata(user, item_id)] = (True, word(reveal_index))

    def set_call_result(self, user: str, item_id: int, text: str) -> None:
        self.chain.calls[self._calldata(user, item_id)] = (True, text)

    def set_revert(self, user: str, item_id: int, stderr: str) -> None:
        self.chain.calls[self._calldata(user, item_id)] = (False, stderr)


def make_node(backend) -> NodeClient:
    return NodeClient(RemoteCallClient(backend, sleep=lambda _s: None))


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def fx(chain):
    return Fixture(chain, make_node(chain))

"""Typed view over the node command set. Every call goes through RemoteCallClient."""
from __future__ import annotations

from typing import Optional

from .call_helper import RemoteCallClient


class NodeClient:
    def __init__(self, client: RemoteCallClient):
        self.client = client

    def latest_block(self) -> int:
        return int(self.client.invoke(["block-number"]), 10)

    def code_at(self, address: str, block: Optional[int] = None) -> str:
        args = ["code", address]
        if block is not None:
            args += ["--block", str(block)]
        return self.client.invoke(args)

    def logs(self, address: str, topic0: str, from_block: int, to_block: int) -> str:
        return self.client.invoke([
            "logs", "--json",
            "--from-block", str(from_block),
            "--to-block", str(to_block),
            "--address", address,
            topic0,
        ])

    def storage_at(self, address: str, slot: str) -> str:
        return self.client.invoke(["storage", address, slot])

    def call(self, address: str, calldata: str) -> str:
        return self.client.invoke(["call", address, calldata])

    def abi_encode(self, signature: str, *values) -> str:
        return self.client.invoke(["abi-encode", signature, *[str(v) for v in values]])

    def keccak256(self, data_hex: str) -> str:
        return self.client.invoke(["keccak256", data_hex])

    def event_topic(self, signature: str) -> str:
        return self.client.invoke(["sig-event", signature])

    def calldata(self, signature: str, *values) -> str:
        return self.client.invoke(["calldata", signature, *[str(v) for v in values]])

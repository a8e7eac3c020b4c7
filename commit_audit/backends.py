"""
Node backends. Each one executes a single cast-style command and returns its
stdout text, or raises CommandFailed with the failure text.

Supported commands (cast argv conventions):
    block-number
    code <addr> [--block N]
    logs --json --from-block A --to-block B --address <addr> <topic0>
    storage <addr> <slot>
    call <addr> <calldata>
    abi-encode <sig> <args...>
    keccak256 <hex>
    sig-event <signature>
    calldata <sig> <args...>
"""
from __future__ import annotations

import json
import logging
import subprocess
from typing import List

import requests
from eth_abi import encode as abi_encode
from web3 import Web3

from .call_helper import CommandFailed

log = logging.getLogger(__name__)

# commands that talk to the node (and therefore need --rpc-url for cast)
NETWORK_COMMANDS = {"block-number", "code", "logs", "storage", "call"}


class CastBackend:
    """Runs Foundry's `cast` binary."""

    def __init__(self, rpc_url: str, executable: str = "cast"):
        self.rpc_url = rpc_url
        self.executable = executable

    def run(self, args: List[str]) -> str:
        argv = [self.executable, *args]
        if args and args[0] in NETWORK_COMMANDS:
            argv += ["--rpc-url", self.rpc_url]
        try:
            proc = subprocess.run(argv, capture_output=True, text=True)
        except OSError as e:
            raise CommandFailed(args, f"could not start {self.executable}: {e}") from e
        if proc.returncode != 0:
            raise CommandFailed(args, proc.stderr, proc.returncode)
        return proc.stdout


# ----------------------
# JSON-RPC helpers
# ----------------------

def _hex(i: int) -> str:
    return hex(i)

def _int(h: str) -> int:
    return int(h, 16)

def _option(args: List[str], name: str, default=None):
    if name in args:
        i = args.index(name)
        if i + 1 < len(args):
            return args[i + 1]
    return default

def _positionals(args: List[str]) -> List[str]:
    """Arguments after the command name that are neither flags nor flag values."""
    out, skip = [], False
    for a in args[1:]:
        if skip:
            skip = False
            continue
        if a == "--json":
            continue
        if a.startswith("--"):
            skip = True
            continue
        out.append(a)
    return out

def _param_types(signature: str) -> List[str]:
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    return [t.strip() for t in inner.split(",") if t.strip()]

def _coerce(abi_type: str, value: str):
    if abi_type == "address":
        return Web3.to_checksum_address(value)
    if abi_type.startswith("uint") or abi_type.startswith("int"):
        return int(value, 0)
    if abi_type == "bool":
        return value.lower() == "true"
    if abi_type.startswith("bytes"):
        return Web3.to_bytes(hexstr=value)
    return value

def _encode_args(signature: str, values: List[str]) -> bytes:
    types = _param_types(signature)
    if len(types) != len(values):
        raise ValueError(f"{signature} takes {len(types)} arguments, got {len(values)}")
    return abi_encode(types, [_coerce(t, v) for t, v in zip(types, values)])


class JsonRpcBackend:
    """
    Serves the cast command set over plain JSON-RPC. Encoding and hashing
    primitives are computed locally with web3/eth_abi.
    """

    def __init__(self, rpc_url: str, timeout: int = 60):
        self.rpc_url = rpc_url
        self.timeout = timeout

    def _rpc_call(self, args: List[str], method: str, params: list):
        try:
            resp = requests.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise CommandFailed(args, f"request timeout: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise CommandFailed(args, f"error sending request: connection failed: {e}") from e
        except requests.RequestException as e:
            raise CommandFailed(args, f"error sending request: {e}") from e

        if resp.status_code != 200:
            raise CommandFailed(args, f"HTTP error {resp.status_code} with body: {resp.text[:500]}")

        try:
            j = resp.json()
        except ValueError as e:
            raise CommandFailed(args, f"invalid JSON-RPC response: {resp.text[:500]}") from e

        if "error" in j and j["error"]:
            err = j["error"]
            data = err.get("data")
            text = f"server returned an error response: error code {err.get('code', -1)}: {err.get('message', '')}"
            if data:
                text += f", data: {data if isinstance(data, str) else json.dumps(data)}"
            raise CommandFailed(args, text)

        return j.get("result")

    def run(self, args: List[str]) -> str:
        if not args:
            raise CommandFailed(args, "empty command")
        cmd = args[0]
        pos = _positionals(args)

        if cmd == "block-number":
            return str(_int(self._rpc_call(args, "eth_blockNumber", [])))

        if cmd == "code":
            block = _option(args, "--block")
            tag = _hex(int(block)) if block is not None else "latest"
            return self._rpc_call(args, "eth_getCode", [pos[0], tag]) or "0x"

        if cmd == "logs":
            flt = {
                "fromBlock": _hex(int(_option(args, "--from-block"))),
                "toBlock": _hex(int(_option(args, "--to-block"))),
                "address": _option(args, "--address"),
            }
            if pos:
                flt["topics"] = [pos[0]]
            return json.dumps(self._rpc_call(args, "eth_getLogs", [flt]) or [])

        if cmd == "storage":
            slot = Web3.to_hex(int(pos[1], 0))
            value = self._rpc_call(args, "eth_getStorageAt", [pos[0], slot, "latest"]) or "0x0"
            return "0x" + value[2:].rjust(64, "0")

        if cmd == "call":
            result = self._rpc_call(args, "eth_call", [{"to": pos[0], "data": pos[1]}, "latest"])
            return result or "0x"

        try:
            if cmd == "abi-encode":
                return Web3.to_hex(_encode_args(pos[0], pos[1:]))
            if cmd == "keccak256":
                return Web3.to_hex(Web3.keccak(hexstr=pos[0]))
            if cmd == "sig-event":
                return Web3.to_hex(Web3.keccak(text=pos[0]))
            if cmd == "calldata":
                selector = Web3.keccak(text=pos[0])[:4]
                return Web3.to_hex(selector + _encode_args(pos[0], pos[1:]))
        except (ValueError, TypeError, IndexError) as e:
            raise CommandFailed(args, f"invalid arguments for {cmd}: {e}") from e

        raise CommandFailed(args, f"unsupported command: {cmd}")


def make_backend(kind: str, rpc_url: str, cast_binary: str = "cast"):
    if kind == "cast":
        return CastBackend(rpc_url, executable=cast_binary)
    if kind == "rpc":
        return JsonRpcBackend(rpc_url)
    raise ValueError(f"Unknown backend {kind!r} (expected 'rpc' or 'cast')")

import logging
import sys
from typing import Optional

import typer
from web3 import Web3

from . import config
from .call_helper import AuditError
from .deployment import locate_deployment_block
from .main import build_node, run_audit
from .pipeline import Strategy

app = typer.Typer(help="Audit pending / refundable commits of a commit-reveal contract")

log = logging.getLogger("commit_audit")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def _require(value: Optional[str], what: str, env: str) -> str:
    if not value:
        log.error("Missing %s. Pass it as an option or set %s (or %s_%s).", what, env, env, config.CHAIN_ID)
        raise typer.Exit(code=1)
    return value


def _checked_address(address: str) -> str:
    if not Web3.is_address(address):
        log.error("Invalid contract address: %s", address)
        raise typer.Exit(code=1)
    return address.lower()


@app.command()
def audit(
    rpc_url: Optional[str] = typer.Option(config.RPC_URL, "--rpc-url", help="Node RPC URL (env RPC_URL)"),
    contract: Optional[str] = typer.Option(config.CONTRACT_ADDRESS, "--contract", "--pack-address",
                                           help="Commit-reveal contract address (env CONTRACT_ADDRESS)"),
    from_block: Optional[int] = typer.Option(None, "--from-block", min=0,
                                             help="First block to scan (default: deployment block)"),
    to_block: Optional[int] = typer.Option(None, "--to-block", min=0, help="Last block to scan (default: head)"),
    log_chunk_size: Optional[int] = typer.Option(config.LOG_CHUNK_SIZE, "--log-chunk-size", min=1,
                                                 help="Max blocks per log request"),
    skip_reveal_events: bool = typer.Option(False, "--skip-reveal-events",
                                            help="Query getRevealIdx() per commit instead of fetching Reveal logs"),
    commitments_slot: int = typer.Option(config.COMMITMENTS_SLOT, "--commitments-slot",
                                         help="Storage slot of the commitments mapping"),
    backend: str = typer.Option(config.RPC_BACKEND, "--backend", help="'rpc' (JSON-RPC) or 'cast' (Foundry)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging, including every node command"),
):
    """Print {pendingReveals, refundEligible} as JSON on stdout; diagnostics go to stderr."""
    _setup_logging(verbose)
    rpc_url = _require(rpc_url, "RPC URL", "RPC_URL")
    address = _checked_address(_require(contract, "contract address", "CONTRACT_ADDRESS"))

    try:
        node = build_node(rpc_url, backend)
        result = run_audit(
            node,
            address,
            from_block=from_block,
            to_block=to_block,
            chunk_size=log_chunk_size,
            strategy=Strategy.DIRECT_QUERY if skip_reveal_events else Strategy.EVENT_DIFF,
            base_slot=commitments_slot,
        )
    except (AuditError, ValueError) as e:
        log.error("Error: %s", e)
        raise typer.Exit(code=1)

    typer.echo(result.report.to_json())


@app.command("deployment-block")
def deployment_block(
    rpc_url: Optional[str] = typer.Option(config.RPC_URL, "--rpc-url", help="Node RPC URL (env RPC_URL)"),
    contract: Optional[str] = typer.Option(config.CONTRACT_ADDRESS, "--contract", "--pack-address",
                                           help="Contract address (env CONTRACT_ADDRESS)"),
    backend: str = typer.Option(config.RPC_BACKEND, "--backend", help="'rpc' (JSON-RPC) or 'cast' (Foundry)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Print the first block at which the contract has code."""
    _setup_logging(verbose)
    rpc_url = _require(rpc_url, "RPC URL", "RPC_URL")
    address = _checked_address(_require(contract, "contract address", "CONTRACT_ADDRESS"))

    try:
        node = build_node(rpc_url, backend)
        block = locate_deployment_block(node, address, node.latest_block())
    except (AuditError, ValueError) as e:
        log.error("Error: %s", e)
        raise typer.Exit(code=1)

    typer.echo(block)


if __name__ == "__main__":
    app()

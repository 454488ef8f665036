"""Command-line interface for the swap finder."""

import asyncio
import logging

import click
import structlog
from pydantic import TypeAdapter, ValidationError
from structlog.stdlib import LoggerFactory

from . import __version__
from .coin_selection import select_coins
from .config import config
from .errors import SwapFinderError
from .esplora import EsploraClient
from .fees import calculate_fee
from .models import UTXO, OutputTarget
from .networks import get_network
from .transactions import decode_raw_transaction

logging.basicConfig(format="%(message)s", level=config.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

network_option = click.option(
    "--network",
    default=config.network,
    type=click.Choice(["bitcoin", "testnet", "regtest"]),
    help="Network used for address derivation",
)


def _parse_json(adapter: TypeAdapter, value: str, name: str):
    try:
        return adapter.validate_json(value)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint=name) from e


@click.group()
@click.version_option(version=__version__)
def cli():
    """Swap Finder - atomic swap discovery and UTXO funding tools."""
    pass


@cli.command()
@click.argument("raw_hex")
@network_option
def decode(raw_hex: str, network: str):
    """Decode a raw transaction."""
    try:
        decoded = decode_raw_transaction(raw_hex, get_network(network))
    except SwapFinderError as e:
        raise click.ClickException(str(e)) from e
    click.echo(decoded.model_dump_json(indent=2))


@cli.command()
@click.argument("inputs", type=int)
@click.argument("outputs", type=int)
@click.argument("fee_rate", type=float)
def fee(inputs: int, outputs: int, fee_rate: float):
    """Estimate the fee of a transaction shape."""
    click.echo(calculate_fee(inputs, outputs, fee_rate))


@cli.command(name="select-coins")
@click.option("--utxos", required=True, help="JSON list of UTXOs")
@click.option("--targets", required=True, help="JSON list of output targets")
@click.option("--fee-rate", required=True, type=float, help="Fee per byte")
@click.option("--fixed", default="[]", help="JSON list of inputs that must be spent")
def select_coins_command(utxos: str, targets: str, fee_rate: float, fixed: str):
    """Select inputs for a funding transaction."""
    utxo_adapter = TypeAdapter(list[UTXO])
    available = _parse_json(utxo_adapter, utxos, "--utxos")
    outputs = _parse_json(TypeAdapter(list[OutputTarget]), targets, "--targets")
    pinned = _parse_json(utxo_adapter, fixed, "--fixed")
    try:
        result = select_coins(available, outputs, fee_rate, fixed_inputs=pinned)
    except SwapFinderError as e:
        raise click.ClickException(str(e)) from e
    click.echo(result.model_dump_json(indent=2))


@cli.command()
@click.argument("txid")
@click.option("--api-url", default=config.esplora_api_url, help="Esplora API URL")
@network_option
def tx(txid: str, api_url: str, network: str):
    """Fetch and normalize a transaction from Esplora."""
    logger.info("Fetching transaction", txid=txid, api_url=api_url)

    async def run():
        client = EsploraClient(api_url, get_network(network))
        try:
            return await client.get_transaction(txid)
        finally:
            await client.close()

    try:
        result = asyncio.run(run())
    except SwapFinderError as e:
        raise click.ClickException(str(e)) from e

    if result is None:
        raise click.ClickException(f"Transaction not found: {txid}")
    click.echo(result.model_dump_json(indent=2))


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()

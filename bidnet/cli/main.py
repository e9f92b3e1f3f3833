"""
bidnet CLI - Command Line Interface for the auction service

Main entry point for all CLI commands.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional, Tuple

import click

from bidnet.core.config import load_config
from bidnet.utils.logger import setup_logging


def parse_server(value: Optional[str], default_host: str, default_port: int) -> Tuple[str, int]:
    """Split "host:port" (either part optional) into a (host, port) pair."""
    if not value:
        return default_host, default_port
    host, _, port = value.rpartition(":")
    if not port.isdigit():
        raise click.BadParameter(f"expected host:port, got {value!r}", param_hint="--server")
    return host or default_host, int(port)


def parse_key(value: Optional[str]) -> Optional[bytes]:
    """Decode a pinned service public key given in hex."""
    from bidnet.crypto import hex_to_bytes
    from bidnet.utils.validation import validate_public_key_hex

    if not value:
        return None
    valid, err = validate_public_key_hex(value)
    if not valid:
        raise click.BadParameter(err, param_hint="--key")
    return hex_to_bytes(value)


def run_client(ctx, server: Optional[str], key: Optional[str], action: Callable[..., Awaitable[None]]):
    """Connect to a service, run ``action(client)``, report transport errors."""
    from bidnet.core.errors import BidnetError
    from bidnet.network import RPCClient

    config = ctx.obj["config"]
    host, port = parse_server(server, config.host, config.port)
    expected_key = parse_key(key)

    async def main():
        async with RPCClient(host, port, expected_key, timeout=config.request_timeout) as client:
            await action(client)

    try:
        asyncio.run(main())
    except BidnetError as e:
        click.echo(f"❌ {e}", err=True)
        ctx.exit(1)


def echo_envelope(envelope: dict) -> None:
    click.echo(json.dumps(envelope))


def client_options(f):
    f = click.option("--key", default=None, help="Expected service public key (hex)")(f)
    f = click.option("--server", default=None, help="Service address host:port")(f)
    return f


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (default ~/.bidnet)")
@click.option("--env-file", default=None, help="Load BIDNET_* settings from this .env file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, env_file):
    """bidnet - peer-to-peer auction service"""
    config = load_config(env_file).with_overrides(data_dir=data_dir)
    if debug:
        config.log_level = "DEBUG"

    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        raise click.BadParameter(f"unknown log level {config.log_level!r}", param_hint="BIDNET_LOG_LEVEL")
    setup_logging(
        level=level,
        log_dir=config.log_dir or config.data_dir / "logs",
        log_to_file=config.log_to_file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Service Commands
# =============================================================================


@cli.command("serve")
@click.option("--host", default=None, help="Listen address")
@click.option("--port", default=None, type=int, help="Listen port")
@click.option("--memory", is_flag=True, help="Keep auctions in memory instead of SQLite")
@click.pass_context
def serve(ctx, host, port, memory):
    """Start the auction RPC service"""
    from bidnet.service import AuctionService

    config = ctx.obj["config"].with_overrides(host=host, port=port)

    async def run_service():
        service = AuctionService.build(config, in_memory=memory)
        await service.start()
        click.echo(f"Service listening on {config.host}:{service.port}")
        click.echo(f"Public key: {service.public_key_hex}")
        try:
            await service.server.serve_forever()
        except asyncio.CancelledError:
            pass
        finally:
            await service.stop()

    try:
        asyncio.run(run_service())
    except KeyboardInterrupt:
        click.echo("\nService stopped.")


@cli.command("identity")
@click.pass_context
def identity(ctx):
    """Show (creating on first use) the service public key"""
    from bidnet.core.identity import bootstrap_identity
    from bidnet.core.storage import StorageManager

    config = ctx.obj["config"]
    config.ensure_dirs()
    storage = StorageManager(config.data_dir, config.db_name)
    try:
        ident = bootstrap_identity(storage, config.seed_bytes)
    finally:
        storage.close()

    click.echo(f"Public key: {ident.public_key_hex}")
    click.echo(f"Address:    {ident.rpc_keypair.address}")


# =============================================================================
# Auction Commands
# =============================================================================


@cli.group()
def auction():
    """Auction operations against a running service"""
    pass


@auction.command("open")
@click.argument("auction_id")
@click.option("--description", default="", help="Item description")
@click.option("--price", required=True, type=float, help="Starting price")
@client_options
@click.pass_context
def auction_open(ctx, auction_id, description, price, server, key):
    """Open an auction"""

    async def action(client):
        echo_envelope(await client.open_auction(auction_id, description, price))

    run_client(ctx, server, key, action)


@auction.command("bid")
@click.argument("auction_id")
@click.option("--bidder", required=True, help="Bidder name")
@click.option("--amount", required=True, type=float, help="Bid amount")
@client_options
@click.pass_context
def auction_bid(ctx, auction_id, bidder, amount, server, key):
    """Place a bid"""

    async def action(client):
        echo_envelope(await client.place_bid(auction_id, bidder, amount))

    run_client(ctx, server, key, action)


@auction.command("close")
@click.argument("auction_id")
@client_options
@click.pass_context
def auction_close(ctx, auction_id, server, key):
    """Close an auction and report the winner"""

    async def action(client):
        echo_envelope(await client.close_auction(auction_id))

    run_client(ctx, server, key, action)


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--item", default="item1", help="Auction id to use")
@client_options
@click.pass_context
def demo(ctx, item, server, key):
    """Run the sample auction against a running service"""

    async def action(client):
        click.echo("=" * 60)
        click.echo("  BIDNET - DEMO")
        click.echo("=" * 60)

        result = await client.open_auction(item, "Sample item", 75)
        click.echo(f"📦 Auction opened for {item}: {result}")

        for bidder, amount in (("Client#2", 80), ("Client#3", 75.5)):
            result = await client.place_bid(item, bidder, amount)
            click.echo(f"💸 Bid placed by {bidder} for {item} with amount {amount}: {result}")

        result = await client.close_auction(item)
        click.echo(f"⚖️  Auction closed for {item}: {result}")
        if result.get("success") and result.get("winner") is not None:
            click.echo(f"  ✓ Winner: {result['winner']} ({result['amount']})")
        elif result.get("success"):
            click.echo("  ✓ No bids were placed")

    run_client(ctx, server, key, action)


if __name__ == "__main__":
    cli()

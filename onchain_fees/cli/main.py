"""Command-line interface for the on-chain fee reader."""

import sys
import json
from typing import Optional, Tuple
import click
import structlog

from onchain_fees.core.errors import OnChainFeesError, RateLimitError
from onchain_fees.core.factory import build_services
from onchain_fees.models.config import FeeReaderConfig
from onchain_fees.utils.logging import setup_logging

logger = structlog.get_logger(__name__)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option('--config-file', '-c', type=click.Path(exists=True),
              help='Path to configuration (.env) file')
@click.option('--log-level', '-l', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Logging level')
@click.pass_context
def cli(ctx, config_file: Optional[str], log_level: str):
    """On-chain fee reader CLI."""
    ctx.ensure_object(dict)

    try:
        if config_file:
            config = FeeReaderConfig(_env_file=config_file)
        else:
            config = FeeReaderConfig()
        config.log_level = log_level
    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    setup_logging(config)
    ctx.obj['config'] = config


@cli.command()
@click.argument('position_ids', nargs=-1, required=True)
@click.pass_context
def fees(ctx, position_ids: Tuple[str, ...]):
    """Show unclaimed fees for one or more positions."""
    services = build_services(ctx.obj['config'])

    try:
        if len(position_ids) == 1:
            quote = services.fee_resolver.get_unclaimed_fees(position_ids[0])
            _echo_json(quote.to_json_dict())
        else:
            quotes = services.fee_resolver.get_batch_unclaimed_fees(position_ids)
            _echo_json({pid: quote.to_json_dict() for pid, quote in quotes.items()})
    except (OnChainFeesError, ValueError) as e:
        click.echo(f"❌ Fee lookup failed: {e}", err=True)
        sys.exit(1)
    finally:
        services.close()


@cli.command()
@click.argument('symbols', nargs=-1, required=True)
@click.pass_context
def price(ctx, symbols: Tuple[str, ...]):
    """Show USD prices (cached, stale or fallback)."""
    services = build_services(ctx.obj['config'])
    try:
        _echo_json({symbol.upper(): services.price_cache.get_price(symbol) for symbol in symbols})
    finally:
        services.close()


@cli.command()
@click.argument('token')
@click.argument('owner')
@click.pass_context
def balance(ctx, token: str, owner: str):
    """Show the ERC-20 balance of OWNER for TOKEN."""
    services = build_services(ctx.obj['config'])

    try:
        _echo_json(services.fee_resolver.get_token_balance(token, owner))
    except (OnChainFeesError, ValueError) as e:
        click.echo(f"❌ Balance lookup failed: {e}", err=True)
        sys.exit(1)
    finally:
        services.close()


@cli.command()
@click.pass_context
def status(ctx):
    """Probe every RPC endpoint and show the registry health snapshot."""
    services = build_services(ctx.obj['config'])
    registry = services.registry

    try:
        for endpoint in registry.endpoints:
            client = services.executor.client_for(endpoint)
            try:
                block = client.block_number()
                registry.mark_success(endpoint)
                click.echo(f"✅ {endpoint.url} block={block}")
            except OnChainFeesError as e:
                registry.mark_error(endpoint, is_rate_limit=isinstance(e, RateLimitError))
                click.echo(f"❌ {endpoint.url} {e}")

        _echo_json(registry.get_status())
    finally:
        services.close()


def main():
    cli(obj={})


if __name__ == '__main__':
    main()

"""Click CLI entry point for walletgraph.

All commands are thin orchestration wrappers — business logic lives in
config, fetchers, session, graph and output modules.

Exit codes:
  0 — success
  1 — generic CLI error
  2 — API error, rate limit, invalid key
  3 — network error
  4 — data error (invalid address, transaction not found)
  5 — config error
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import sys
from dataclasses import fields
from pathlib import Path
from typing import Any

import click

from walletgraph import __version__
from walletgraph.config import (
    VALID_NETWORKS,
    WalletGraphConfig,
    get_default_config_path,
    load_config,
    save_config,
    validate_config,
)
from walletgraph.exceptions import (
    ConfigInvalidError,
    InvalidAddressError,
    TransactionNotFoundError,
    WalletGraphError,
)
from walletgraph.fetchers import get_fetcher
from walletgraph.normalize import is_valid_address
from walletgraph.output import format_output, mask_api_key
from walletgraph.session import GraphSession, GraphSettings

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ["json", "jsonl", "csv", "tree"]


# ── Error handler ─────────────────────────────────────────────────────────────


def _output_error(err: WalletGraphError | Exception) -> None:
    """Write error JSON to stderr."""
    if isinstance(err, WalletGraphError):
        payload = err.to_dict()
        exit_code = err.exit_code
    else:
        payload = {"error": "unknown_error", "message": str(err), "details": {}}
        exit_code = 1
    sys.stderr.write(json.dumps(payload) + "\n")
    sys.stderr.flush()
    sys.exit(exit_code)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    envvar="WALLETGRAPH_CONFIG",
    default=None,
    help="Config file path (default: ~/.walletgraph/config.toml)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default=None,
    help="Output format (overrides config default)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log fetch activity to stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    output_format: str | None,
    verbose: bool,
) -> None:
    """walletgraph — explore Starknet wallet activity as an expandable tree."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except WalletGraphError as e:
        # On config errors, use defaults (so config init still works)
        logger.warning("Ignoring config: %s", e.message)
        config = WalletGraphConfig()

    ctx.obj["config"] = config
    ctx.obj["format"] = output_format or config.output.default_format
    ctx.obj["config_path"] = config_path


# ── Explore command ───────────────────────────────────────────────────────────


@cli.command("explore")
@click.argument("address")
@click.option("--page", default=1, type=click.IntRange(1, 100), show_default=True)
@click.option(
    "--expand-tx",
    "expand_txs",
    multiple=True,
    help="Expand a transaction by hash (repeatable, applied in order)",
)
@click.option(
    "--expand-address",
    "expand_addresses",
    multiple=True,
    help="Expand a counter-party address (repeatable, applied after --expand-tx)",
)
@click.option("--network", type=click.Choice(sorted(VALID_NETWORKS)), default=None)
@click.option("--format", "fmt", type=click.Choice(OUTPUT_FORMATS), default=None)
@click.pass_context
def explore_command(
    ctx: click.Context,
    address: str,
    page: int,
    expand_txs: tuple[str, ...],
    expand_addresses: tuple[str, ...],
    network: str | None,
    fmt: str | None,
) -> None:
    """Build the transaction tree for a wallet ADDRESS."""
    config: WalletGraphConfig = ctx.obj["config"]
    fmt = fmt or ctx.obj.get("format", "json")
    address = address.strip()

    async def _run() -> dict[str, Any]:
        if not is_valid_address(address):
            raise InvalidAddressError(
                f"Invalid Starknet address: {address!r}. "
                "Must start with 0x and be 64–66 characters.",
                details={"address": address},
            )

        client = get_fetcher(network or config.api.network, config)
        try:
            session = GraphSession(address, client, GraphSettings.from_config(config))
            await session.start(page)
            for tx_hash in expand_txs:
                await session.on_transaction_node_activated(tx_hash)
            for addr in expand_addresses:
                await session.on_address_node_activated(addr)
            return session.to_dict()
        finally:
            await client.close()

    try:
        result = asyncio.run(_run())
        color = config.output.color and sys.stdout.isatty()
        click.echo(format_output(result, fmt, color=color))
    except WalletGraphError as e:
        _output_error(e)


# ── Transaction detail command ────────────────────────────────────────────────


@cli.command("tx")
@click.argument("tx_hash")
@click.option("--network", type=click.Choice(sorted(VALID_NETWORKS)), default=None)
@click.pass_context
def tx_command(ctx: click.Context, tx_hash: str, network: str | None) -> None:
    """Show the receipt detail of one transaction."""
    config: WalletGraphConfig = ctx.obj["config"]

    async def _run() -> dict[str, Any]:
        client = get_fetcher(network or config.api.network, config)
        try:
            detail = await client.get_transaction_detail(tx_hash)
        finally:
            await client.close()
        if detail is None:
            raise TransactionNotFoundError(
                f"No detail available for transaction {tx_hash}",
                details={"hash": tx_hash},
            )
        return detail.to_dict()

    try:
        result = asyncio.run(_run())
        click.echo(format_output(result, "json"))
    except WalletGraphError as e:
        _output_error(e)


# ── Config commands ───────────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Manage walletgraph configuration."""


_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def _config_file(ctx: click.Context) -> Path:
    provided = ctx.obj.get("config_path")
    return Path(provided) if provided else get_default_config_path()


def _coerce(current: Any, raw: str) -> Any:
    """Parse a command-line string into the type of the field it replaces."""
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ValueError(f"expected true or false, got {raw!r}")
    if isinstance(current, (int, float)):
        return type(current)(raw)
    return raw


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing config (keeps a .bak copy)")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a default config file (~/.walletgraph/config.toml)."""
    config_path = _config_file(ctx)
    existed = config_path.exists()

    if existed and not force:
        click.echo(
            json.dumps(
                {
                    "status": "already_exists",
                    "config_path": str(config_path),
                    "hint": "Use --force to reinitialize",
                }
            )
        )
        return

    result: dict[str, Any] = {
        "status": "reinitialized" if existed else "initialized",
        "config_path": str(config_path),
    }
    if existed:
        backup = config_path.with_name(config_path.name + ".bak")
        shutil.copy2(config_path, backup)
        result["backup"] = str(backup)

    save_config(WalletGraphConfig(), str(config_path))
    click.echo(json.dumps(result))


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a config value by dotted key path (e.g. graph.page_size).

    The updated config is validated before it is written, so a value that
    would make the next load fail is rejected with exit code 5.
    """
    config: WalletGraphConfig = ctx.obj["config"]

    section_name, _, field_name = key.partition(".")
    if not field_name:
        _output_error(
            WalletGraphError(
                f"Key must be in form section.key, got: {key!r}", details={"key": key}
            )
        )

    sections = {f.name for f in fields(config)}
    section = getattr(config, section_name) if section_name in sections else None
    if section is None or field_name not in {f.name for f in fields(section)}:
        _output_error(ConfigInvalidError(f"Unknown config key: {key!r}", details={"key": key}))

    try:
        typed_value = _coerce(getattr(section, field_name), value)
    except ValueError as e:
        _output_error(ConfigInvalidError(f"Invalid value for {key}: {e}", details={"key": key}))

    setattr(section, field_name, typed_value)
    try:
        validate_config(config)
    except ConfigInvalidError as e:
        _output_error(e)

    save_config(config, ctx.obj.get("config_path"))
    shown = mask_api_key(typed_value) if field_name == "api_key" else typed_value
    click.echo(json.dumps({"status": "updated", "key": key, "value": shown}))


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration (API key masked)."""
    config: WalletGraphConfig = ctx.obj["config"]
    config_path = _config_file(ctx)

    result = {
        "config_path": str(config_path),
        "api": {
            "network": config.api.network,
            "base_url": config.api.base_url,
            "api_key": mask_api_key(config.api.api_key),
            "timeout_seconds": config.api.timeout_seconds,
            "rate_limit_per_second": config.api.rate_limit_per_second,
        },
        "graph": {
            "page_size": config.graph.page_size,
            "history_limit": config.graph.history_limit,
            "max_pages": config.graph.max_pages,
            "fallback_pages": config.graph.fallback_pages,
            "prefetch_details": config.graph.prefetch_details,
        },
        "output": {
            "default_format": config.output.default_format,
            "color": config.output.color,
        },
    }

    click.echo(format_output(result, "json"))


if __name__ == "__main__":
    cli()

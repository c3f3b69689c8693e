"""Command line interface for managing SSH keys."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
import yaml

from oceankeys import keygen
from oceankeys.clients import BaseKeyClient, get_client
from oceankeys.config import OceanKeysConfig, load_config
from oceankeys.errors import OceanKeysError
from oceankeys.lifecycle import (
    RenameMode,
    VisibilityMode,
    cleanup,
    run_scenario,
)

app = typer.Typer(help="CLI for managing SSH keys on the provider account")

# Command groups
keys_app = typer.Typer(help="Commands for managing keys")

app.add_typer(keys_app, name="keys")

_state: dict = {}


@app.callback()
def main(
    config: Optional[str] = typer.Option(None, help="Path to a YAML config file"),
    backend: Optional[str] = typer.Option(None, help="Client backend: http or inmemory"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """oceankeys CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        _state["config"] = load_config(config)
    except (ValueError, yaml.YAMLError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(1)
    _state["backend"] = backend


def _config() -> OceanKeysConfig:
    return _state.get("config") or load_config()


def _client() -> BaseKeyClient:
    return get_client(_state.get("backend"), _config())


def _run(coro):
    try:
        return asyncio.run(coro)
    except (OceanKeysError, ValueError) as e:
        # ValueError covers an unknown backend name from get_client.
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@keys_app.command("list")
def keys_list() -> None:
    """List the keys on the account."""

    async def _list():
        async with _client() as client:
            return await client.list_keys()

    for key in _run(_list()):
        typer.echo(f"{key.id}\t{key.fingerprint}\t{key.name}")


@keys_app.command("create")
def keys_create(
    name: str,
    public_key: Optional[str] = typer.Option(None, help="OpenSSH public key line"),
    generate: bool = typer.Option(False, help="Generate a throwaway RSA key"),
) -> None:
    """Register a public key under ``name``."""
    if generate:
        public_key = keygen.generate_public_key(_config().lifecycle.key_bits)
    if not public_key:
        typer.echo("Provide --public-key or --generate", err=True)
        raise typer.Exit(2)

    async def _create():
        async with _client() as client:
            return await client.create(name, public_key)

    key = _run(_create())
    typer.echo(f"{key.id}\t{key.fingerprint}\t{key.name}")


@keys_app.command("rename")
def keys_rename(
    new_name: str,
    key_id: Optional[int] = typer.Option(None, "--id", help="Key id"),
    fingerprint: Optional[str] = typer.Option(None, help="Key fingerprint"),
) -> None:
    """Rename a key addressed by id or fingerprint."""
    if (key_id is None) == (fingerprint is None):
        typer.echo("Provide exactly one of --id or --fingerprint", err=True)
        raise typer.Exit(2)

    async def _rename():
        async with _client() as client:
            if key_id is not None:
                return await client.rename_by_id(key_id, new_name)
            return await client.rename_by_fingerprint(fingerprint, new_name)

    key = _run(_rename())
    typer.echo(f"{key.id}\t{key.fingerprint}\t{key.name}")


@keys_app.command("delete")
def keys_delete(
    key_id: Optional[int] = typer.Option(None, "--id", help="Key id"),
    fingerprint: Optional[str] = typer.Option(None, help="Key fingerprint"),
) -> None:
    """Delete a key addressed by id or fingerprint."""
    if (key_id is None) == (fingerprint is None):
        typer.echo("Provide exactly one of --id or --fingerprint", err=True)
        raise typer.Exit(2)

    async def _delete():
        async with _client() as client:
            if key_id is not None:
                await client.delete_by_id(key_id)
            else:
                await client.delete_by_fingerprint(fingerprint)

    _run(_delete())
    typer.echo(f"Deleted {key_id if key_id is not None else fingerprint}")


@app.command("check")
def check(
    rename_by: RenameMode = typer.Option(RenameMode.BY_ID, help="Rename by id or fingerprint"),
    mode: VisibilityMode = typer.Option(VisibilityMode.POLL, help="How to wait for the listing"),
) -> None:
    """Run a create/rename/delete lifecycle and clean up afterwards."""
    config = _config().lifecycle

    async def _check():
        async with _client() as client:
            try:
                return await run_scenario(
                    client, config, rename_mode=rename_by, visibility_mode=mode
                )
            finally:
                await cleanup(client, config.name_prefix)

    outcome = _run(_check())
    for step in outcome.steps:
        marker = "ok" if step.ok else "FAILED"
        typer.echo(f"  {step.name:<16} {step.state.value:<18} {marker}")
    if not outcome.succeeded:
        typer.echo(
            f"Scenario {outcome.name} failed at {outcome.failed_step}: "
            f"{outcome.error_kind}: {outcome.error}",
            err=True,
        )
        raise typer.Exit(1)
    typer.echo(f"Scenario {outcome.name} passed")


if __name__ == "__main__":
    app()

"""Typer-based command line interface."""
from __future__ import annotations

import asyncio
import json
import signal
from enum import Enum
from pathlib import Path
from typing import Optional

import click
import typer

from .config import AppConfig, dump_default_config, load_config
from .directory import render_hpke_jwks, render_privacypass_directory
from .exceptions import KeyDirectoryError
from .logging import configure_logging
from .models import KeyPurpose
from .services import KeyServices, RotationScheduler, build_services
from .services.key_lifecycle import order_by_recency

app = typer.Typer(help="Key Directory: rotate and publish token keys")


class DirectoryFormat(str, Enum):
    PRIVACYPASS = "privacypass"
    JWKS = "jwks"


@app.callback()
def main(ctx: typer.Context, config: Optional[Path] = typer.Option(None, "--config", metavar="PATH")) -> None:
    try:
        ctx.obj = load_config(config)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2)
    configure_logging(ctx.obj.logging.normalized_level())


def _services() -> KeyServices:
    config: AppConfig = click.get_current_context().find_root().obj
    return build_services(config)


def _run(coro):
    try:
        return asyncio.run(coro)
    except KeyDirectoryError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1)


@app.command()
def rotate(
    purpose: Optional[KeyPurpose] = typer.Option(None, "--purpose", help="Only mint a key for this purpose"),
) -> None:
    """Mint a new key per purpose and print the public keys"""
    services = _services()
    purposes = [purpose] if purpose else list(KeyPurpose)

    async def _mint():
        return [await services.minter.mint_unique(p) for p in purposes]

    for record in _run(_mint()):
        typer.echo(f"{record.purpose.value:<10} {record.identifier:>3} {record.public_key_b64}")


@app.command()
def sweep() -> None:
    """Delete expired keys outside the freshest window"""
    services = _services()

    async def _sweep():
        return {p.value: await services.lifecycle.sweep(p) for p in KeyPurpose}

    deleted = _run(_sweep())
    if not any(deleted.values()):
        typer.echo("No keys to clear")
        return
    for purpose, identifiers in deleted.items():
        if identifiers:
            typer.echo(f"Keys cleared ({purpose}): {', '.join(str(i) for i in identifiers)}")


@app.command("list-keys")
def list_keys() -> None:
    """List stored keys, newest first"""
    services = _services()

    async def _list():
        return {p: order_by_recency(await services.records.list(p)) for p in KeyPurpose}

    found = False
    for purpose, records in _run(_list()).items():
        for record in records:
            found = True
            nbf = record.not_before if record.not_before is not None else "-"
            typer.echo(f"{purpose.value:<10} {record.identifier:>3} {record.uploaded_at.isoformat()} nbf={nbf}")
    if not found:
        typer.echo("No keys found")


@app.command()
def directory(fmt: DirectoryFormat = typer.Argument(DirectoryFormat.PRIVACYPASS)) -> None:
    """Print a rendered directory"""
    services = _services()
    config = services.config

    async def _render():
        if fmt is DirectoryFormat.JWKS:
            records = await services.lifecycle.select(KeyPurpose.ENCRYPTION)
            return render_hpke_jwks(records, cache_max_age=config.directory.cache_max_age_seconds)
        records = await services.lifecycle.select(KeyPurpose.SIGNATURE)
        return render_privacypass_directory(
            records,
            issuer_request_uri=config.directory.issuer_request_uri,
            cache_max_age=config.directory.cache_max_age_seconds,
        )

    typer.echo(_run(_render()).body.decode("utf-8"))


@app.command()
def workflow(run_id: Optional[str] = typer.Option(None, "--run-id", help="Resume this run")) -> None:
    """Run one full rotation (mint encryption, mint signature, sweep)"""
    services = _services()
    result = _run(services.workflow.run(run_id))
    typer.echo(
        json.dumps(
            {"run_id": result.run_id, "minted": result.minted, "deleted": result.deleted, "skipped": result.skipped},
            indent=2,
        )
    )


@app.command()
def schedule() -> None:
    """Run the periodic rotation trigger until interrupted"""
    services = _services()
    interval = services.config.rotation.interval_seconds
    if interval <= 0:
        typer.echo("rotation.interval_seconds must be positive to schedule", err=True)
        raise typer.Exit(code=2)

    async def _loop():
        scheduler = RotationScheduler(services.workflow, interval)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, scheduler.stop)
            except NotImplementedError:  # pragma: no cover - windows
                pass
        await scheduler.run_forever()

    _run(_loop())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8787, "--port"),
) -> None:
    """Serve directories and admin endpoints over HTTP"""
    import uvicorn

    from .api import create_app

    config: AppConfig = click.get_current_context().find_root().obj
    uvicorn.run(create_app(config), host=host, port=port, log_level=config.logging.level.lower())


@app.command("init-config")
def init_config(target: Path = typer.Argument(Path(".keydir") / "config.yaml")) -> None:
    """Write the default configuration as YAML"""
    dump_default_config(target)
    typer.echo(f"Configuration written to {target}")


@app.command()
def version() -> None:
    from .version import __version__

    typer.echo(__version__)


if __name__ == "__main__":  # pragma: no cover
    app()

"""CLI: mimecast auth connect|status|disconnect"""

from datetime import datetime, timezone
from typing import Optional

import click
from rich.console import Console

from mimecast_api.auth import CUSTOM_REGION, REGIONS
from mimecast_api.client import AsyncMimecast
from mimecast_api.models.session import Session

console = Console()


def _load_config() -> dict:
    from mimecast_api.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from mimecast_api.cli.main import _save_config
    _save_config(cfg)


def _run(coro):
    from mimecast_api.cli.main import _run
    return _run(coro)


@click.group()
def auth():
    """Authentication commands."""


@auth.command("connect")
@click.option("--region", envvar="MIMECAST_REGION", default=None,
              help=f"One of {', '.join(REGIONS)}")
@click.option("--base-uri", envvar="MIMECAST_BASE_URI", default=None, help="Custom API base URI")
@click.option("--client-id", envvar="MIMECAST_CLIENT_ID", default=None)
@click.option("--client-secret", envvar="MIMECAST_CLIENT_SECRET", default=None)
def auth_connect(region: Optional[str], base_uri: Optional[str],
                 client_id: Optional[str], client_secret: Optional[str]):
    """Connect with OAuth2 client credentials."""

    async def _connect():
        cfg = _load_config()
        if base_uri:
            reg = region or CUSTOM_REGION
        else:
            reg = region or cfg.get("region") or click.prompt("Region", type=click.Choice(list(REGIONS)))
        cid = client_id or cfg.get("client_id") or click.prompt("Client ID")
        secret = client_secret or click.prompt("Client secret", hide_input=True)

        async with AsyncMimecast() as client:
            with console.status("Requesting access token..."):
                session = await client.connect(reg, cid, secret, base_uri=base_uri)
        console.print(f"[green]Connected to {session.base_uri} ({session.region})[/green]")
        console.print(f"[dim]Token expires {session.token_expiry:%Y-%m-%d %H:%M:%S} UTC[/dim]")

        _save_config({
            **cfg,
            "region": session.region,
            "client_id": cid,
            "session": session.model_dump(mode="json", exclude={"client_secret"}),
        })

    _run(_connect())


@auth.command("status")
def auth_status():
    """Show current connection status."""
    cfg = _load_config()
    if not cfg.get("session"):
        console.print("[yellow]Not connected. Run `mimecast auth connect`.[/yellow]")
        return
    session = Session.model_validate(cfg["session"])
    expiry = session.token_expiry
    if not session.is_connected or expiry is None:
        console.print("[yellow]Not connected. Run `mimecast auth connect`.[/yellow]")
        return
    if expiry <= datetime.now(timezone.utc):
        console.print(f"[yellow]Token expired at {expiry:%Y-%m-%d %H:%M:%S} UTC. Reconnect.[/yellow]")
    else:
        console.print(f"[green]Connected[/green] to {session.base_uri} ({session.region}), "
                      f"token valid until {expiry:%Y-%m-%d %H:%M:%S} UTC")


@auth.command("disconnect")
def auth_disconnect():
    """Forget the saved token."""
    cfg = _load_config()
    cfg.pop("session", None)
    _save_config(cfg)
    console.print("[green]Disconnected.[/green]")

"""
Mimecast CLI: `mimecast` command.

Commands:
  mimecast auth connect        Client-credentials login
  mimecast request METHOD PATH Single API call
  mimecast list PATH           Paginated POST, all pages
  mimecast search              Archive search
  mimecast trace               Message trace
"""

import asyncio
import json
import logging
from pathlib import Path

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install mimecast-api[cli]")

from mimecast_api.client import AsyncMimecast
from mimecast_api.errors import MimecastError
from mimecast_api.models.session import Session

console = Console()
err_console = Console(stderr=True)
CONFIG_FILE = Path.home() / ".mimecast" / "config.json"


def _load_config() -> dict:
    try:
        return json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _get_client() -> AsyncMimecast:
    cfg = _load_config()
    if not cfg.get("session"):
        err_console.print("[red]Not connected. Run `mimecast auth connect` first.[/red]")
        raise SystemExit(1)
    return AsyncMimecast(session=Session.model_validate(cfg["session"]))


def _run(coro):
    try:
        return asyncio.run(coro)
    except MimecastError as e:
        err_console.print(f"[red]Error ({e.code}):[/red] {e}")
        raise SystemExit(1)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    # httpx logs every request at INFO; keep it at the same level as ours.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """Mimecast CLI: query the Mimecast API 2.0 from the shell."""
    _configure_logging(verbose)


# Register subcommands from separate modules
from mimecast_api.cli.auth import auth
from mimecast_api.cli.api import request_cmd, list_cmd
from mimecast_api.cli.search import search_cmd, trace_cmd

main.add_command(auth)
main.add_command(request_cmd)
main.add_command(list_cmd)
main.add_command(search_cmd)
main.add_command(trace_cmd)


if __name__ == "__main__":
    main()

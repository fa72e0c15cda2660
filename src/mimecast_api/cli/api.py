"""CLI: mimecast request, mimecast list"""

import json
from typing import Optional

import click
from rich.console import Console

console = Console()


def _get_client():
    from mimecast_api.cli.main import _get_client
    return _get_client()


def _run(coro):
    from mimecast_api.cli.main import _run
    return _run(coro)


def _parse_body(body: Optional[str]):
    if body is None:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--body")


def _parse_params(params: tuple[str, ...]) -> Optional[list[tuple[str, str]]]:
    pairs = []
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--param")
        pairs.append((key, value))
    return pairs or None


@click.command("request")
@click.argument("method", type=click.Choice(["GET", "POST", "PUT", "DELETE"], case_sensitive=False))
@click.argument("path")
@click.option("-b", "--body", default=None, help="JSON request body, sent as given")
@click.option("-p", "--param", "params", multiple=True, help="Query parameter key=value")
@click.option("--raw", is_flag=True, help="Print the full response envelope")
def request_cmd(method: str, path: str, body: Optional[str], params: tuple[str, ...], raw: bool):
    """Send one API call, e.g. `mimecast request GET /account/get-account`."""
    payload = _parse_body(body)
    query = _parse_params(params)

    async def _request():
        async with _get_client() as client:
            result = await client.execute(method, path, payload, params=query, raw=raw)
        if raw:
            result = result.model_dump(mode="json", exclude_unset=True, by_alias=True)
        click.echo(json.dumps(result, indent=2))

    _run(_request())


@click.command("list")
@click.argument("path")
@click.option("-b", "--body", default=None, help="JSON request object (wrapped in data[] if needed)")
@click.option("--first-page", is_flag=True, help="Stop after the first page")
def list_cmd(path: str, body: Optional[str], first_page: bool):
    """Fetch every page of a paginated endpoint."""
    payload = _parse_body(body)

    async def _list():
        async with _get_client() as client:
            with console.status(f"Fetching {path}..."):
                records = await client.fetch_all(path, payload, first_page_only=first_page)
        click.echo(json.dumps(records, indent=2))

    _run(_list())

"""CLI: mimecast search, mimecast trace"""

import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from mimecast_api.models.message import MessageRecord
from mimecast_api.models.search import DateRange, SearchFilters, TraceFilters

console = Console()


def _get_client():
    from mimecast_api.cli.main import _get_client
    return _get_client()


def _run(coro):
    from mimecast_api.cli.main import _run
    return _run(coro)


def _window(start: Optional[datetime], end: Optional[datetime]) -> DateRange:
    end = end or datetime.now(timezone.utc)
    start = start or end - timedelta(days=1)
    return DateRange(start=start, end=end)


def _print_records(records: list[MessageRecord], title: str, json_output: bool) -> None:
    if json_output:
        click.echo(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
        return
    table = Table(title=f"{title} ({len(records)} messages)")
    table.add_column("Received")
    table.add_column("From", style="bold")
    table.add_column("To")
    table.add_column("Subject")
    table.add_column("Status")
    for r in records:
        recipients = ", ".join(d.address for d in r.deliveries)
        table.add_row(r.received or "", r.sender.address or r.sender.name or "", recipients,
                      r.subject or "", r.status or "")
    console.print(table)


def _paging_options(fn):
    fn = click.option("--start", type=click.DateTime(), default=None, help="Window start, UTC (default: end - 24h)")(fn)
    fn = click.option("--end", type=click.DateTime(), default=None, help="Window end, UTC (default: now)")(fn)
    fn = click.option("--page-size", default=100, type=int)(fn)
    fn = click.option("--limit", default=None, type=int, help="Maximum records; overrides --first-page")(fn)
    fn = click.option("--skip", default=0, type=int)(fn)
    fn = click.option("--first-page", is_flag=True, help="Only the first page")(fn)
    fn = click.option("--json-output", "--json", is_flag=True)(fn)
    return fn


@click.command("search")
@click.option("--from", "from_address", multiple=True)
@click.option("--to", "to_address", multiple=True)
@click.option("--subject", multiple=True)
@click.option("--body", multiple=True)
@click.option("--keyword", multiple=True)
@click.option("--attachment-name", multiple=True)
@click.option("--attachment-hash", multiple=True)
@click.option("--has-attachment", is_flag=True)
@click.option("--no-attachment", is_flag=True)
@click.option("--query", default=None, help="Raw query text, exclusive with the filters above")
@click.option("--oldest-first", is_flag=True)
@_paging_options
def search_cmd(from_address, to_address, subject, body, keyword, attachment_name, attachment_hash,
               has_attachment, no_attachment, query, oldest_first,
               start, end, page_size, limit, skip, first_page, json_output):
    """Search the email archive."""
    filters = SearchFilters(
        from_address=list(from_address),
        to_address=list(to_address),
        subject=list(subject),
        body=list(body),
        keyword=list(keyword),
        attachment_name=list(attachment_name),
        attachment_hash=list(attachment_hash),
        has_attachment=has_attachment,
        no_attachment=no_attachment,
        query=query,
    )

    async def _search():
        async with _get_client() as client:
            with console.status("Searching archive..."):
                records = await client.search(
                    filters, _window(start, end), page_size=page_size, limit=limit, skip=skip,
                    fetch_all=not first_page, oldest_first=oldest_first,
                )
        _print_records(records, "Archive search", json_output)

    _run(_search())


@click.command("trace")
@click.option("--sender", default=None)
@click.option("--recipient", default=None)
@click.option("--subject", default=None)
@click.option("--sender-ip", default=None)
@click.option("--message-id", default=None)
@click.option("--route", multiple=True, type=click.Choice(["inbound", "outbound", "internal", "external"]))
@click.option("--reason", "search_reason", default=None, help="Search reason recorded by the provider")
@_paging_options
def trace_cmd(sender, recipient, subject, sender_ip, message_id, route, search_reason,
              start, end, page_size, limit, skip, first_page, json_output):
    """Trace message delivery."""
    filters = TraceFilters(
        sender=sender,
        recipient=recipient,
        subject=subject,
        sender_ip=sender_ip,
        message_id=message_id,
        route=list(route),
        search_reason=search_reason,
    )

    async def _trace():
        async with _get_client() as client:
            with console.status("Tracing messages..."):
                records = await client.trace(
                    filters, _window(start, end), page_size=page_size, limit=limit, skip=skip,
                    fetch_all=not first_page,
                )
        _print_records(records, "Message trace", json_output)

    _run(_trace())

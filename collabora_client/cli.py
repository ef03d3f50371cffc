from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from collabora_client.client import CollaboraClient
from collabora_client.common import env_str
from collabora_client.gateway import ClientConfig, ClientError, HttpGateway, RequestGateway
from collabora_client.render import SenderPalette, format_message, format_notification, table

T = TypeVar("T")


@click.group()
@click.option(
    "--base-url",
    default=None,
    help="API base URL (defaults to $COLLABORA_API_BASE or http://localhost/collabora/api).",
)
@click.option("--csrf-token", default=None, help="CSRF token (defaults to $COLLABORA_CSRF_TOKEN).")
@click.option(
    "--session-id", default=None, help="PHP session id (defaults to $COLLABORA_SESSION_ID)."
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (defaults to $COLLABORA_LOG_LEVEL or WARNING).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    base_url: str | None,
    csrf_token: str | None,
    session_id: str | None,
    log_level: str | None,
) -> None:
    """Command line client for the Collabora API."""
    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["csrf_token"] = csrf_token
    ctx.obj["session_id"] = session_id
    level = (log_level or env_str("COLLABORA_LOG_LEVEL", default="WARNING")).upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _gateway(ctx: click.Context) -> RequestGateway:
    obj = ctx.obj or {}
    config = ClientConfig.from_env(
        base_url=obj.get("base_url"),
        csrf_token=obj.get("csrf_token"),
        session_id=obj.get("session_id"),
    )
    return HttpGateway(config)


def _run(ctx: click.Context, work: Callable[[CollaboraClient], Awaitable[T]]) -> T:
    async def _main() -> T:
        gateway = _gateway(ctx)
        client = CollaboraClient(gateway)
        try:
            return await work(client)
        finally:
            await client.aclose()
            if isinstance(gateway, HttpGateway):
                await gateway.aclose()

    try:
        return asyncio.run(_main())
    except ClientError as e:
        raise click.ClickException(e.message) from e


def _write_or_echo(content: bytes, output: str | None, *, what: str) -> None:
    if output:
        Path(output).write_bytes(content)
        click.echo(f"Exported {what} to {output} ({len(content)} bytes)", err=True)
    else:
        click.echo(content.decode("utf-8", errors="replace"))


@cli.group("chat")
def chat_group() -> None:
    """Chat rooms and messages."""


@chat_group.command("rooms")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@click.pass_context
def chat_rooms(ctx: click.Context, *, as_json: bool) -> None:
    """List chat rooms with unread counts."""
    result = _run(ctx, lambda client: client.chat.get_rooms())
    rooms = result["rooms"]

    if as_json:
        click.echo(json.dumps(result, ensure_ascii=True, sort_keys=True, indent=2))
        return

    click.echo(f"Rooms: {len(rooms)} (unread: {result['unread_total']})")
    for line in table(rooms, ["id", "name", "type", "unread_count"]):
        click.echo(line)


@chat_group.command("send")
@click.argument("room_id")
@click.argument("message")
@click.pass_context
def chat_send(ctx: click.Context, room_id: str, message: str) -> None:
    """Send MESSAGE to ROOM_ID."""
    result = _run(ctx, lambda client: client.chat.send_message(room_id, message))
    sent = result["message"]
    message_id = sent.get("id") if isinstance(sent, dict) else None
    click.echo(f"Sent message {message_id} to room {room_id}.")


@chat_group.command("watch")
@click.argument("room_id")
@click.option("--interval-ms", type=int, default=None, help="Polling interval in milliseconds.")
@click.option("--full", is_flag=True, help="Show full message content instead of preview.")
@click.option("--presence", is_flag=True, help="Report presence as online while watching.")
@click.pass_context
def chat_watch(
    ctx: click.Context,
    room_id: str,
    *,
    interval_ms: int | None,
    full: bool,
    presence: bool,
) -> None:
    """Follow new messages in a room (like tail -f).

    Examples:

        collabora chat watch 5                     # Follow room 5
        collabora chat watch 5 --full --presence   # Full bodies, appear online
    """
    palette = SenderPalette()

    def on_messages(messages: list[Any]) -> None:
        for msg in messages:
            click.echo(format_message(msg, palette=palette, full=full))

    async def work(client: CollaboraClient) -> None:
        client.chat.start_polling(room_id, on_messages, interval_ms)
        if presence:
            client.chat.start_presence_heartbeat()
        await asyncio.Event().wait()

    click.echo(click.style(f"Watching room {room_id} (Ctrl+C to exit)", fg="green", bold=True))
    try:
        _run(ctx, work)
    except KeyboardInterrupt:
        click.echo()
        click.echo(click.style("Stopped watching.", dim=True))


@cli.group("tasks")
def tasks_group() -> None:
    """Task operations."""


@tasks_group.command("list")
@click.option("--status", default=None, help="Filter by status (pending/in_progress/completed).")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@click.pass_context
def tasks_list(ctx: click.Context, *, status: str | None, as_json: bool) -> None:
    """List tasks."""
    filters = {"status": status} if status else None
    result = _run(ctx, lambda client: client.tasks.get_tasks(filters))
    tasks = result["tasks"]

    if as_json:
        click.echo(json.dumps(result, ensure_ascii=True, sort_keys=True, indent=2))
        return

    click.echo(f"Tasks: {len(tasks)} of {result['total']}")
    if not tasks:
        return
    for line in table(tasks, ["id", "title", "status", "priority", "due_date"]):
        click.echo(line)


@tasks_group.command("export")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["csv", "json", "pdf"], case_sensitive=False),
    default="csv",
    show_default=True,
)
@click.option("--output", "-o", type=click.Path(), default=None, help="Output file path.")
@click.pass_context
def tasks_export(ctx: click.Context, *, fmt: str, output: str | None) -> None:
    """Export tasks (stdout unless --output is given)."""
    content = _run(ctx, lambda client: client.tasks.export_tasks(fmt.lower()))
    _write_or_echo(content, output, what="tasks")


@cli.group("calendar")
def calendar_group() -> None:
    """Calendar operations."""


@calendar_group.command("export")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["ical", "csv"], case_sensitive=False),
    default="ical",
    show_default=True,
)
@click.option("--output", "-o", type=click.Path(), default=None, help="Output file path.")
@click.pass_context
def calendar_export(ctx: click.Context, *, fmt: str, output: str | None) -> None:
    """Export calendar events (stdout unless --output is given)."""
    content = _run(ctx, lambda client: client.calendar.export_events(fmt.lower()))
    _write_or_echo(content, output, what="calendar")


@cli.group("notifications")
def notifications_group() -> None:
    """Notifications."""


@notifications_group.command("watch")
@click.option("--interval-ms", type=int, default=None, help="Polling interval in milliseconds.")
@click.pass_context
def notifications_watch(ctx: click.Context, *, interval_ms: int | None) -> None:
    """Print new notifications as they arrive."""

    def on_notifications(items: list[Any]) -> None:
        for item in items:
            click.echo(format_notification(item))

    async def work(client: CollaboraClient) -> None:
        client.dashboard.start_notification_polling(on_notifications, interval_ms)
        await asyncio.Event().wait()

    click.echo(click.style("Waiting for notifications (Ctrl+C to exit)", dim=True))
    try:
        _run(ctx, work)
    except KeyboardInterrupt:
        click.echo()
        click.echo(click.style("Stopped watching.", dim=True))

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner
from conftest import FakeGateway

import collabora_client.cli as cli_mod
from collabora_client.cli import cli


@pytest.fixture
def fake(monkeypatch) -> FakeGateway:
    gw = FakeGateway()
    monkeypatch.setattr(cli_mod, "_gateway", lambda ctx: gw)
    return gw


def test_chat_rooms_table(fake: FakeGateway) -> None:
    fake.reply(
        "GET",
        "messages.php",
        {
            "success": True,
            "data": [
                {"id": 1, "name": "general", "type": "public", "unread_count": 3},
                {"id": 2, "name": "dev", "type": "private", "unread_count": 0},
            ],
            "unread_total": 3,
        },
    )

    result = CliRunner().invoke(cli, ["chat", "rooms"])
    assert result.exit_code == 0, result.output

    lines = result.output.strip().splitlines()
    assert lines[0] == "Rooms: 2 (unread: 3)"
    assert lines[1].split() == ["id", "name", "type", "unread_count"]
    assert lines[2].split() == ["1", "general", "public", "3"]


def test_chat_rooms_json(fake: FakeGateway) -> None:
    fake.reply("GET", "messages.php", {"success": True, "data": [{"id": 1}], "unread_total": 0})

    result = CliRunner().invoke(cli, ["chat", "rooms", "--json"])
    assert result.exit_code == 0, result.output

    payload = json.loads(result.output)
    assert payload == {"success": True, "rooms": [{"id": 1}], "unread_total": 0}


def test_chat_send(fake: FakeGateway) -> None:
    fake.reply("POST", "messages.php", {"success": True, "data": {"id": 77, "message": "hi"}})

    result = CliRunner().invoke(cli, ["chat", "send", "5", "hi"])
    assert result.exit_code == 0, result.output
    assert "Sent message 77 to room 5." in result.output
    assert fake.calls_to("POST", "messages.php")[0]["room_id"] == "5"


def test_chat_watch_prints_messages_until_interrupted(fake: FakeGateway) -> None:
    fake.reply(
        "GET",
        "chat-poll.php",
        {"success": True, "data": {"messages": [{"id": 101, "user_name": "ana", "message": "hello"}]}},
        KeyboardInterrupt(),
    )

    result = CliRunner().invoke(cli, ["chat", "watch", "5", "--interval-ms", "10"])
    assert result.exit_code == 0, result.output

    out = result.output
    assert "Watching room 5" in out
    assert "[101] ana: hello" in out
    assert "Stopped watching." in out


def test_notifications_watch(fake: FakeGateway) -> None:
    fake.reply(
        "GET",
        "notifications.php",
        {"success": True, "data": [{"title": "Assigned", "message": "Task 4"}]},
        KeyboardInterrupt(),
    )

    result = CliRunner().invoke(cli, ["notifications", "watch", "--interval-ms", "10"])
    assert result.exit_code == 0, result.output
    assert "* Assigned: Task 4" in result.output
    assert "Stopped watching." in result.output


def test_tasks_list_filters_by_status(fake: FakeGateway) -> None:
    fake.reply(
        "GET",
        "tasks.php",
        {
            "success": True,
            "data": [{"id": 4, "title": "Write docs", "status": "pending", "priority": "high"}],
            "total": 9,
        },
    )

    result = CliRunner().invoke(cli, ["tasks", "list", "--status", "pending"])
    assert result.exit_code == 0, result.output

    assert result.output.splitlines()[0] == "Tasks: 1 of 9"
    assert "Write docs" in result.output
    assert fake.calls_to("GET", "tasks.php")[0] == {"status": "pending", "action": "list"}


def test_tasks_list_empty(fake: FakeGateway) -> None:
    fake.reply("GET", "tasks.php", {"success": True, "data": [], "total": 0})

    result = CliRunner().invoke(cli, ["tasks", "list"])
    assert result.exit_code == 0, result.output
    assert result.output.strip() == "Tasks: 0 of 0"


def test_tasks_export_to_file(fake: FakeGateway, tmp_path: Path) -> None:
    fake.raw_response = httpx.Response(200, content=b"id,title\n4,Write docs\n")
    out = tmp_path / "tasks.csv"

    result = CliRunner().invoke(cli, ["tasks", "export", "--format", "csv", "-o", str(out)])
    assert result.exit_code == 0, result.output

    assert out.read_bytes() == b"id,title\n4,Write docs\n"


def test_calendar_export_to_stdout(fake: FakeGateway) -> None:
    fake.raw_response = httpx.Response(200, content=b"BEGIN:VCALENDAR\nEND:VCALENDAR\n")

    result = CliRunner().invoke(cli, ["calendar", "export"])
    assert result.exit_code == 0, result.output
    assert "BEGIN:VCALENDAR" in result.output
    (_, _, path) = fake.calls[-1]
    assert "format=ical" in path


def test_client_error_becomes_click_error(fake: FakeGateway) -> None:
    fake.reply("GET", "tasks.php", {"success": False, "message": "Session expired"})

    result = CliRunner().invoke(cli, ["tasks", "list"])

    assert result.exit_code == 1
    assert "Error: Session expired" in result.output

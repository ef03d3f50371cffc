from __future__ import annotations

import json

import httpx
import pytest

from collabora_client.common import ErrorCode
from collabora_client.gateway import (
    ApplicationError,
    ClientConfig,
    EndpointNotFoundError,
    FormData,
    HttpGateway,
    InvalidResponseError,
    TransportError,
    UnauthorizedError,
    clean_params,
    resource_with_query,
)


def _gateway(handler, **config) -> HttpGateway:
    config.setdefault("base_url", "http://testserver/api/")
    return HttpGateway(ClientConfig(**config), transport=httpx.MockTransport(handler))


def test_build_api_url_joins_without_double_slash() -> None:
    gw = HttpGateway(ClientConfig(base_url="http://testserver/api/"))
    assert gw.build_api_url("/tasks.php?id=1") == "http://testserver/api/tasks.php?id=1"
    assert gw.build_api_url("events.php") == "http://testserver/api/events.php"


def test_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("COLLABORA_API_BASE", "https://collab.example/api")
    monkeypatch.setenv("COLLABORA_CSRF_TOKEN", "tok")
    monkeypatch.setenv("COLLABORA_TIMEOUT_MS", "5000")
    monkeypatch.delenv("COLLABORA_SESSION_ID", raising=False)

    cfg = ClientConfig.from_env()
    assert cfg.base_url == "https://collab.example/api"
    assert cfg.csrf_token == "tok"
    assert cfg.session_id is None
    assert cfg.timeout_ms == 5000

    assert ClientConfig.from_env(base_url="http://other").base_url == "http://other"


def test_clean_params_and_query() -> None:
    assert clean_params({"a": 1, "b": None, "f": {"x": 1}}) == {"a": 1, "f": '{"x":1}'}
    assert resource_with_query("tasks.php", {"id": 7, "skip": None}) == "tasks.php?id=7"
    assert resource_with_query("tasks.php", {}) == "tasks.php"


def test_form_data_encodes_booleans_and_drops_none() -> None:
    form = FormData(fields={"notify": True, "draft": False, "note": None})
    form.append("action", "import")
    assert form.encoded_fields() == {"notify": "true", "draft": "false", "action": "import"}


@pytest.mark.anyio
async def test_get_sends_headers_and_drops_none_params() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"success": True, "data": [1, 2], "total": 2})

    async with _gateway(handler, csrf_token="csrf-1") as gw:
        env = await gw.get("tasks.php", {"action": "list", "status": None, "limit": 5})

    assert env.success is True
    assert env.data == [1, 2]
    assert env.total == 2
    request = captured[0]
    assert request.url.path == "/api/tasks.php"
    assert dict(request.url.params) == {"action": "list", "limit": "5"}
    assert request.headers["X-Requested-With"] == "XMLHttpRequest"
    assert request.headers["X-CSRF-Token"] == "csrf-1"


@pytest.mark.anyio
async def test_post_sends_json_body() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"success": True, "data": {"id": 42}, "extra": "kept"})

    async with _gateway(handler) as gw:
        env = await gw.post("events.php", {"action": "create", "title": "Standup"})

    assert json.loads(captured[0].content) == {"action": "create", "title": "Standup"}
    assert captured[0].method == "POST"
    assert "X-CSRF-Token" not in captured[0].headers
    assert env.field("extra") == "kept"
    assert env.data_field("id") == 42


@pytest.mark.anyio
async def test_404_maps_to_endpoint_not_found() -> None:
    async with _gateway(lambda r: httpx.Response(404, text="nope")) as gw:
        with pytest.raises(EndpointNotFoundError) as exc:
            await gw.get("missing.php")

    assert str(exc.value) == "API endpoint not found: missing.php"
    assert exc.value.code == ErrorCode.ENDPOINT_NOT_FOUND


@pytest.mark.anyio
async def test_401_carries_redirect() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"success": False, "redirect": "/login.php"})

    async with _gateway(handler) as gw:
        with pytest.raises(UnauthorizedError) as exc:
            await gw.get("tasks.php")

    assert exc.value.redirect == "/login.php"
    assert exc.value.status_code == 401


@pytest.mark.anyio
async def test_error_status_with_message_is_application_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"success": False, "message": "Permission denied"})

    async with _gateway(handler) as gw:
        with pytest.raises(ApplicationError) as exc:
            await gw.post("tasks.php", {"action": "delete"})

    assert exc.value.message == "Permission denied"
    assert exc.value.status_code == 403


@pytest.mark.anyio
async def test_error_status_without_json_is_transport_error() -> None:
    async with _gateway(lambda r: httpx.Response(500, text="<html>oops</html>")) as gw:
        with pytest.raises(TransportError) as exc:
            await gw.get("tasks.php")

    assert str(exc.value) == "HTTP 500: Internal Server Error"
    assert not isinstance(exc.value, ApplicationError)


@pytest.mark.anyio
async def test_non_json_or_non_object_body_is_invalid_response() -> None:
    async with _gateway(lambda r: httpx.Response(200, text="<html></html>")) as gw:
        with pytest.raises(InvalidResponseError, match="Invalid server response"):
            await gw.get("tasks.php")

    async with _gateway(lambda r: httpx.Response(200, json=[1, 2])) as gw:
        with pytest.raises(InvalidResponseError):
            await gw.get("tasks.php")


@pytest.mark.anyio
async def test_network_failure_is_generic_transport_error(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _gateway(handler) as gw:
        with pytest.raises(TransportError) as exc:
            await gw.get("tasks.php")
        with pytest.raises(TransportError) as raw_exc:
            await gw.raw_get("events.php?action=export")

    assert str(exc.value) == "Network error"
    assert str(raw_exc.value) == "Network error"
    assert isinstance(exc.value.__cause__, httpx.ConnectError)
    assert "connection refused" in caplog.text


@pytest.mark.anyio
async def test_raw_get_returns_response_untouched() -> None:
    async with _gateway(lambda r: httpx.Response(200, content=b"BEGIN:VCALENDAR")) as gw:
        response = await gw.raw_get("events.php?action=export&format=ical")

    assert response.content == b"BEGIN:VCALENDAR"


@pytest.mark.anyio
async def test_upload_reports_monotonic_progress() -> None:
    captured: list[httpx.Request] = []
    progress: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"success": True, "data": {"id": 3}})

    form = FormData(
        fields={"room_id": 5, "action": "upload_attachment"},
        files={"file": ("notes.txt", b"x" * 200_000, "text/plain")},
    )
    async with _gateway(handler) as gw:
        env = await gw.upload_with_progress("messages.php", form, progress.append)

    assert env.data == {"id": 3}
    assert len(progress) > 1
    assert progress == sorted(progress)
    assert progress[-1] == 100
    request = captured[0]
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert b"upload_attachment" in request.content
    assert int(request.headers["Content-Length"]) == len(request.content)

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import anyio
import httpx
import pytest

from collabora_client.gateway import FormData, ProgressCallback, clean_params
from collabora_client.schemas import Envelope


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.005)


class FakeGateway:
    """Scripted RequestGateway.

    Replies are queued per ``(method, resource)``; the last queued reply is
    sticky so polling loops keep getting an answer. A queued exception is
    raised instead of returned.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Any]] = []
        self.replies: dict[tuple[str, str], list[Any]] = {}
        self.raw_response = httpx.Response(200, content=b"")
        self.gate: asyncio.Event | None = None

    def reply(self, method: str, resource: str, *answers: Any) -> None:
        self.replies.setdefault((method, resource), []).extend(answers)

    def calls_to(self, method: str, resource: str) -> list[Any]:
        return [payload for m, r, payload in self.calls if m == method and r == resource]

    async def _answer(self, method: str, path: str, payload: Any) -> Envelope:
        resource = path.split("?", 1)[0]
        self.calls.append((method, resource, payload))
        if self.gate is not None:
            await self.gate.wait()
        queue = self.replies.get((method, resource))
        if not queue:
            answer: Any = {"success": True}
        elif len(queue) > 1:
            answer = queue.pop(0)
        else:
            answer = queue[0]
        if isinstance(answer, BaseException):
            raise answer
        return Envelope.model_validate(answer)

    async def get(self, resource: str, params: Mapping[str, Any] | None = None) -> Envelope:
        return await self._answer("GET", resource, clean_params(params))

    async def post(self, resource: str, body: Mapping[str, Any] | FormData | None = None) -> Envelope:
        return await self._answer("POST", resource, body)

    async def put(self, resource: str, body: Mapping[str, Any] | None = None) -> Envelope:
        return await self._answer("PUT", resource, body)

    async def delete(self, resource: str) -> Envelope:
        return await self._answer("DELETE", resource, resource)

    def build_api_url(self, path_with_query: str) -> str:
        return f"http://testserver/api/{path_with_query.lstrip('/')}"

    def default_headers(self) -> dict[str, str]:
        return {"X-Requested-With": "XMLHttpRequest"}

    async def raw_get(self, path_with_query: str) -> httpx.Response:
        self.calls.append(("RAW", path_with_query.split("?", 1)[0], path_with_query))
        return self.raw_response

    async def upload_with_progress(
        self,
        resource: str,
        form: FormData,
        on_progress: ProgressCallback | None = None,
    ) -> Envelope:
        if on_progress is not None:
            on_progress(50)
            on_progress(100)
        return await self._answer("UPLOAD", resource, form)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from collabora_client.common import (
    DEFAULT_API_BASE,
    ErrorCode,
    env_int,
    env_optional_str,
    env_str,
    json_dumps,
)
from collabora_client.schemas import Envelope

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024
SESSION_COOKIE = "PHPSESSID"

ProgressCallback = Callable[[int], None]


class ClientError(RuntimeError):
    code: ErrorCode = ErrorCode.TRANSPORT

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportError(ClientError):
    code = ErrorCode.TRANSPORT


class InvalidResponseError(TransportError):
    code = ErrorCode.INVALID_RESPONSE


class EndpointNotFoundError(TransportError):
    code = ErrorCode.ENDPOINT_NOT_FOUND


class UnauthorizedError(TransportError):
    code = ErrorCode.UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized", *, redirect: str | None = None) -> None:
        super().__init__(message, status_code=401)
        self.redirect = redirect


class ApplicationError(ClientError):
    code = ErrorCode.APPLICATION

    def __init__(
        self,
        message: str,
        *,
        envelope: Envelope | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.envelope = envelope


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(slots=True)
class FormData:
    """Multipart body: plain fields plus httpx-style file tuples."""

    fields: dict[str, Any] = field(default_factory=dict)
    files: dict[str, Any] = field(default_factory=dict)

    def append(self, name: str, value: Any) -> None:
        self.fields[name] = value

    def encoded_fields(self) -> dict[str, str]:
        return {k: _form_value(v) for k, v in self.fields.items() if v is not None}


def clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop ``None`` values and JSON-encode nested mappings for a query string."""
    if not params:
        return {}
    return {
        k: json_dumps(v) if isinstance(v, Mapping) else v
        for k, v in params.items()
        if v is not None
    }


def resource_with_query(resource: str, params: Mapping[str, Any]) -> str:
    query = str(httpx.QueryParams(clean_params(params)))
    return f"{resource}?{query}" if query else resource


class RequestGateway(Protocol):
    async def get(self, resource: str, params: Mapping[str, Any] | None = None) -> Envelope: ...

    async def post(self, resource: str, body: Mapping[str, Any] | FormData | None = None) -> Envelope: ...

    async def put(self, resource: str, body: Mapping[str, Any] | None = None) -> Envelope: ...

    async def delete(self, resource: str) -> Envelope: ...

    def build_api_url(self, path_with_query: str) -> str: ...

    def default_headers(self) -> dict[str, str]: ...

    async def raw_get(self, path_with_query: str) -> httpx.Response: ...

    async def upload_with_progress(
        self,
        resource: str,
        form: FormData,
        on_progress: ProgressCallback | None = None,
    ) -> Envelope: ...


@dataclass(frozen=True, slots=True)
class ClientConfig:
    base_url: str = DEFAULT_API_BASE
    csrf_token: str | None = None
    session_id: str | None = None
    timeout_ms: int = 30000

    @classmethod
    def from_env(
        cls,
        *,
        base_url: str | None = None,
        csrf_token: str | None = None,
        session_id: str | None = None,
        timeout_ms: int | None = None,
    ) -> ClientConfig:
        return cls(
            base_url=base_url or env_str("COLLABORA_API_BASE", default=DEFAULT_API_BASE),
            csrf_token=csrf_token or env_optional_str("COLLABORA_CSRF_TOKEN"),
            session_id=session_id or env_optional_str("COLLABORA_SESSION_ID"),
            timeout_ms=timeout_ms
            if timeout_ms is not None
            else env_int("COLLABORA_TIMEOUT_MS", default=30000, min_value=1),
        )


class HttpGateway:
    """RequestGateway over an ``httpx.AsyncClient``."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or ClientConfig.from_env()
        cookies = {SESSION_COOKIE: self.config.session_id} if self.config.session_id else None
        self._client = httpx.AsyncClient(
            timeout=self.config.timeout_ms / 1000.0,
            cookies=cookies,
            transport=transport,
        )

    async def __aenter__(self) -> HttpGateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_api_url(self, path_with_query: str) -> str:
        endpoint = path_with_query[1:] if path_with_query.startswith("/") else path_with_query
        base = self.config.base_url
        base = base[:-1] if base.endswith("/") else base
        return f"{base}/{endpoint}"

    def default_headers(self) -> dict[str, str]:
        headers = {"X-Requested-With": "XMLHttpRequest"}
        if self.config.csrf_token:
            headers["X-CSRF-Token"] = self.config.csrf_token
        return headers

    async def get(self, resource: str, params: Mapping[str, Any] | None = None) -> Envelope:
        return await self._request("GET", resource, params=clean_params(params))

    async def post(
        self, resource: str, body: Mapping[str, Any] | FormData | None = None
    ) -> Envelope:
        if isinstance(body, FormData):
            return await self._request(
                "POST", resource, data=body.encoded_fields(), files=body.files or None
            )
        return await self._request("POST", resource, json=dict(body or {}))

    async def put(self, resource: str, body: Mapping[str, Any] | None = None) -> Envelope:
        return await self._request("PUT", resource, json=dict(body or {}))

    async def delete(self, resource: str) -> Envelope:
        return await self._request("DELETE", resource)

    async def raw_get(self, path_with_query: str) -> httpx.Response:
        url = self.build_api_url(path_with_query)
        try:
            return await self._client.get(url, headers=self.default_headers())
        except httpx.HTTPError as e:
            logger.error("API request error: endpoint=%s url=%s error=%s", path_with_query, url, e)
            raise TransportError("Network error") from e

    async def upload_with_progress(
        self,
        resource: str,
        form: FormData,
        on_progress: ProgressCallback | None = None,
    ) -> Envelope:
        url = self.build_api_url(resource)
        encoded = self._client.build_request(
            "POST", url, data=form.encoded_fields(), files=form.files or None
        )
        body = encoded.read()
        total = len(body)

        async def _chunks() -> AsyncIterator[bytes]:
            sent = 0
            if total == 0 and on_progress is not None:
                on_progress(100)
            for start in range(0, total, UPLOAD_CHUNK_SIZE):
                piece = body[start : start + UPLOAD_CHUNK_SIZE]
                sent += len(piece)
                if on_progress is not None:
                    on_progress(round(sent * 100 / total))
                yield piece

        headers = self.default_headers()
        headers["Content-Type"] = encoded.headers["Content-Type"]
        headers["Content-Length"] = str(total)
        try:
            response = await self._client.post(url, content=_chunks(), headers=headers)
        except httpx.HTTPError as e:
            logger.error("Upload error: endpoint=%s url=%s error=%s", resource, url, e)
            raise TransportError("Network error during upload") from e
        return self._decode(resource, response)

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Envelope:
        url = self.build_api_url(endpoint)
        try:
            response = await self._client.request(
                method, url, headers=self.default_headers(), **kwargs
            )
        except httpx.HTTPError as e:
            logger.error("API request error: endpoint=%s url=%s error=%s", endpoint, url, e)
            raise TransportError("Network error") from e
        return self._decode(endpoint, response)

    def _decode(self, endpoint: str, response: httpx.Response) -> Envelope:
        status = response.status_code
        if status == 404:
            raise EndpointNotFoundError(f"API endpoint not found: {endpoint}", status_code=404)

        try:
            body: Any = response.json()
        except ValueError:
            body = None

        if status == 401:
            redirect = body.get("redirect") if isinstance(body, dict) else None
            raise UnauthorizedError(redirect=redirect if isinstance(redirect, str) else None)

        if not response.is_success:
            if isinstance(body, dict) and body.get("message"):
                raise ApplicationError(str(body["message"]), status_code=status)
            raise TransportError(f"HTTP {status}: {response.reason_phrase}", status_code=status)

        if not isinstance(body, dict):
            raise InvalidResponseError("Invalid server response", status_code=status)
        try:
            return Envelope.model_validate(body)
        except ValidationError as e:
            raise InvalidResponseError("Invalid server response", status_code=status) from e

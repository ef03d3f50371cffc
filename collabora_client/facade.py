from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Mapping
from typing import Any, ClassVar

from collabora_client.events import EventBridge
from collabora_client.gateway import (
    ApplicationError,
    ClientError,
    FormData,
    ProgressCallback,
    RequestGateway,
    TransportError,
    resource_with_query,
)
from collabora_client.schemas import Envelope
from collabora_client.subscriptions import (
    CursorAdvance,
    ItemsCallback,
    PollingSubscription,
    Probe,
    SubscriptionRegistry,
    last_id_cursor,
)

logger = logging.getLogger(__name__)


def request_body(action: str, fields: Mapping[str, Any] | None = None, **fixed: Any) -> dict[str, Any]:
    """Build a request envelope; caller ``fields`` may override ``fixed`` but never ``action``."""
    return {**fixed, **(fields or {}), "action": action}


class FeatureClient:
    """Base for the per-feature facades.

    Every operation goes through ``_get``/``_post``/``_put``/``_delete``: a
    rejected call or an envelope with ``success == false`` is logged and
    raised, so callers only ever see successful envelopes.
    """

    name: ClassVar[str] = "FeatureClient"

    def __init__(
        self,
        gateway: RequestGateway,
        *,
        events: EventBridge | None = None,
        registry: SubscriptionRegistry | None = None,
    ) -> None:
        self.gateway = gateway
        self.events = events if events is not None else EventBridge()
        self.subscriptions = registry if registry is not None else SubscriptionRegistry()

    async def _get(
        self, resource: str, params: Mapping[str, Any] | None, *, failure: str
    ) -> Envelope:
        return await self._checked(resource, self.gateway.get(resource, params), failure)

    async def _post(
        self, resource: str, body: Mapping[str, Any] | FormData | None, *, failure: str
    ) -> Envelope:
        return await self._checked(resource, self.gateway.post(resource, body), failure)

    async def _put(
        self, resource: str, body: Mapping[str, Any] | None, *, failure: str
    ) -> Envelope:
        return await self._checked(resource, self.gateway.put(resource, body), failure)

    async def _delete(
        self, resource: str, params: Mapping[str, Any], *, failure: str
    ) -> Envelope:
        path = resource_with_query(resource, params)
        return await self._checked(resource, self.gateway.delete(path), failure)

    async def _upload(
        self,
        resource: str,
        form: FormData,
        on_progress: ProgressCallback | None,
        *,
        failure: str,
    ) -> Envelope:
        return await self._checked(
            resource, self.gateway.upload_with_progress(resource, form, on_progress), failure
        )

    async def _checked(self, resource: str, pending: Any, failure: str) -> Envelope:
        try:
            envelope: Envelope = await pending
        except ClientError as e:
            logger.error("%s: %s request failed: %s", self.name, resource, e)
            raise
        if not envelope.success:
            message = envelope.message or failure
            logger.error("%s: %s returned failure: %s", self.name, resource, message)
            raise ApplicationError(message, envelope=envelope)
        return envelope

    async def _best_effort(self, resource: str, body: Mapping[str, Any]) -> dict[str, Any]:
        try:
            envelope = await self.gateway.post(resource, body)
        except Exception as e:
            logger.warning("%s: best-effort %s request failed: %r", self.name, resource, e)
            return {"success": False}
        return {"success": bool(envelope.success)}

    async def _download(
        self, resource: str, params: Mapping[str, Any], *, failure: str
    ) -> bytes:
        path = resource_with_query(resource, params)
        try:
            response = await self.gateway.raw_get(path)
        except ClientError as e:
            logger.error("%s: %s download failed: %s", self.name, resource, e)
            raise
        if not response.is_success:
            logger.error("%s: %s download returned HTTP %s", self.name, resource, response.status_code)
            raise TransportError(failure, status_code=response.status_code)
        return response.content

    def _emit(self, event_name: str, payload: Any) -> None:
        self.events.emit(event_name, payload)

    def _subscribe(
        self,
        key: Hashable,
        probe: Probe,
        on_items: ItemsCallback,
        *,
        interval_ms: int,
        cursor: Any = None,
        advance: CursorAdvance = last_id_cursor,
    ) -> Callable[[], None]:
        subscription = PollingSubscription(
            probe,
            on_items,
            interval_ms=interval_ms,
            cursor=cursor,
            advance=advance,
            name=f"{self.name}:{key!r}",
        )
        return self.subscriptions.add(key, subscription)

    def cleanup(self) -> None:
        """Stop every subscription this client owns."""
        self.subscriptions.stop_all()

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from collabora_client.common import interval_ms as resolve_interval
from collabora_client.common import now_iso
from collabora_client.facade import FeatureClient, request_body
from collabora_client.gateway import FormData
from collabora_client.subscriptions import timestamp_cursor

EVENTS = "events.php"

DEFAULT_POLL_MS = 30000


class CalendarClient(FeatureClient):
    """Calendar events: CRUD, drag/resize, settings, sharing, import/export."""

    name = "CalendarClient"

    async def get_events(self, options: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """List events; ``options`` may carry ``start``, ``end`` and ``view``."""
        env = await self._get(EVENTS, request_body("list", options), failure="Failed to fetch events")
        return {"success": True, "events": env.data or []}

    async def get_event(self, event_id: int | str) -> dict[str, Any]:
        env = await self._get(EVENTS, request_body("get", id=event_id), failure="Event not found")
        return {"success": True, "event": env.data}

    async def create_event(self, event_data: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._post(
            EVENTS, request_body("create", event_data), failure="Failed to create event"
        )
        self._emit("calendar:event:created", env.data)
        return {
            "success": True,
            "event": env.data,
            "message": env.message or "Event created successfully",
        }

    async def update_event(self, event_id: int | str, updates: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._put(
            EVENTS, request_body("update", updates, id=event_id), failure="Failed to update event"
        )
        self._emit("calendar:event:updated", env.data)
        return {
            "success": True,
            "event": env.data,
            "message": env.message or "Event updated successfully",
        }

    async def delete_event(self, event_id: int | str) -> dict[str, Any]:
        env = await self._delete(EVENTS, {"id": event_id}, failure="Failed to delete event")
        self._emit("calendar:event:deleted", {"id": event_id})
        return {"success": True, "message": env.message or "Event deleted successfully"}

    async def move_event(self, event_id: int | str, start: str, end: str) -> dict[str, Any]:
        env = await self._post(
            EVENTS,
            request_body("move", id=event_id, start=start, end=end),
            failure="Failed to move event",
        )
        self._emit("calendar:event:moved", env.data)
        return {"success": True, "event": env.data, "message": env.message or "Event moved"}

    async def resize_event(self, event_id: int | str, end: str) -> dict[str, Any]:
        env = await self._post(
            EVENTS, request_body("resize", id=event_id, end=end), failure="Failed to resize event"
        )
        self._emit("calendar:event:resized", env.data)
        return {"success": True, "event": env.data, "message": env.message or "Event resized"}

    async def get_settings(self) -> dict[str, Any]:
        env = await self._get(EVENTS, request_body("settings"), failure="Failed to fetch settings")
        return {"success": True, "settings": env.data or {}}

    async def update_settings(self, settings: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._post(
            EVENTS, request_body("update_settings", settings), failure="Failed to update settings"
        )
        return {
            "success": True,
            "settings": env.data or {},
            "message": env.message or "Settings updated",
        }

    async def share_calendar(self, emails: list[str], permission: str = "view") -> dict[str, Any]:
        env = await self._post(
            EVENTS,
            request_body("share", emails=emails, permission=permission),
            failure="Failed to share calendar",
        )
        return {"success": True, "message": env.message or "Calendar shared successfully"}

    async def export_events(
        self, fmt: str = "ical", options: Mapping[str, Any] | None = None
    ) -> bytes:
        """Download the calendar as iCal/CSV bytes."""
        return await self._download(
            EVENTS, request_body("export", options, format=fmt), failure="Failed to export calendar"
        )

    async def import_events(
        self, file: Any, options: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Import an ICS/CSV file; ``file`` is an httpx file tuple or file object."""
        form = FormData(files={"file": file})
        form.append("action", "import")
        for key, value in (options or {}).items():
            if key != "action":
                form.append(key, value)
        env = await self._post(EVENTS, form, failure="Failed to import events")
        self._emit("calendar:events:imported", env.data)
        return {
            "success": True,
            "imported": env.data_field("count", 0),
            "message": env.message or "Events imported successfully",
        }

    async def search_events(
        self, query: str, filters: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        env = await self._get(
            EVENTS, request_body("search", filters, q=query), failure="Failed to search events"
        )
        return {"success": True, "events": env.data or [], "total": env.total or 0}

    async def get_recurring_instances(
        self, event_id: int | str, date_range: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        env = await self._get(
            EVENTS,
            request_body("instances", date_range, id=event_id),
            failure="Failed to fetch event instances",
        )
        return {"success": True, "instances": env.data or []}

    def subscribe_to_updates(
        self,
        callback: Callable[[list[Any]], Any],
        interval_ms: int | None = None,
    ) -> Callable[[], None]:
        """Poll the change feed; ``callback`` gets each non-empty batch of changes."""

        async def probe(since: Any) -> list[Any]:
            env = await self._get(
                EVENTS, request_body("changes", since=since), failure="Failed to fetch changes"
            )
            return list(env.data or [])

        return self._subscribe(
            ("changes",),
            probe,
            callback,
            interval_ms=resolve_interval(
                interval_ms, env="COLLABORA_CALENDAR_POLL_MS", default=DEFAULT_POLL_MS
            ),
            cursor=now_iso(),
            advance=timestamp_cursor,
        )

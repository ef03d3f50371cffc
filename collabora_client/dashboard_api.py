from __future__ import annotations

from collections.abc import Callable, Hashable, Mapping
from typing import Any

from collabora_client.common import interval_ms as resolve_interval
from collabora_client.common import now_iso
from collabora_client.facade import FeatureClient, request_body
from collabora_client.subscriptions import timestamp_cursor

DASHBOARDS = "dashboards.php"
WIDGETS = "widgets.php"
NOTIFICATIONS = "notifications.php"
REPORTS = "reports.php"
METRICS = "metrics.php"

DEFAULT_NOTIFICATIONS_POLL_MS = 60000
DEFAULT_METRICS_REFRESH_MS = 30000

NOTIFICATIONS_KEY: Hashable = ("notifications",)
METRICS_KEY: Hashable = ("metrics",)


class DashboardClient(FeatureClient):
    """Dashboards, widgets, notifications, reports and metrics."""

    name = "DashboardClient"

    async def get_dashboard(self, dashboard_id: int | str | None = None) -> dict[str, Any]:
        """Fetch one dashboard, or the user's default one when no id is given."""
        params: dict[str, Any] = {"action": "get"}
        if dashboard_id:
            params["id"] = dashboard_id
        env = await self._get(DASHBOARDS, params, failure="Failed to fetch dashboard")
        return {"success": True, "dashboard": env.data, "widgets": env.widgets or []}

    async def get_dashboards(self) -> dict[str, Any]:
        env = await self._get(DASHBOARDS, request_body("list"), failure="Failed to fetch dashboards")
        return {"success": True, "dashboards": env.data or [], "default": env.default_id}

    async def create_dashboard(self, dashboard_data: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._post(
            DASHBOARDS, request_body("create", dashboard_data), failure="Failed to create dashboard"
        )
        self._emit("dashboard:created", env.data)
        return {
            "success": True,
            "dashboard": env.data,
            "message": env.message or "Dashboard created successfully",
        }

    async def update_dashboard(
        self, dashboard_id: int | str, updates: Mapping[str, Any]
    ) -> dict[str, Any]:
        env = await self._put(
            DASHBOARDS,
            request_body("update", updates, id=dashboard_id),
            failure="Failed to update dashboard",
        )
        self._emit("dashboard:updated", env.data)
        return {
            "success": True,
            "dashboard": env.data,
            "message": env.message or "Dashboard updated successfully",
        }

    async def delete_dashboard(self, dashboard_id: int | str) -> dict[str, Any]:
        env = await self._delete(DASHBOARDS, {"id": dashboard_id}, failure="Failed to delete dashboard")
        self._emit("dashboard:deleted", {"id": dashboard_id})
        return {"success": True, "message": env.message or "Dashboard deleted successfully"}

    async def get_widgets(self, dashboard_id: int | str) -> dict[str, Any]:
        env = await self._get(
            WIDGETS, request_body("list", dashboard_id=dashboard_id), failure="Failed to fetch widgets"
        )
        return {"success": True, "widgets": env.data or []}

    async def add_widget(
        self, dashboard_id: int | str, widget_data: Mapping[str, Any]
    ) -> dict[str, Any]:
        env = await self._post(
            WIDGETS,
            request_body("add", widget_data, dashboard_id=dashboard_id),
            failure="Failed to add widget",
        )
        self._emit("widget:added", env.data)
        return {
            "success": True,
            "widget": env.data,
            "message": env.message or "Widget added successfully",
        }

    async def update_widget(self, widget_id: int | str, updates: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._put(
            WIDGETS,
            request_body("update", updates, widget_id=widget_id),
            failure="Failed to update widget",
        )
        self._emit("widget:updated", env.data)
        return {
            "success": True,
            "widget": env.data,
            "message": env.message or "Widget updated successfully",
        }

    async def remove_widget(self, widget_id: int | str) -> dict[str, Any]:
        env = await self._delete(WIDGETS, {"widget_id": widget_id}, failure="Failed to remove widget")
        self._emit("widget:removed", {"widget_id": widget_id})
        return {"success": True, "message": env.message or "Widget removed successfully"}

    async def refresh_widget(self, widget_id: int | str) -> dict[str, Any]:
        env = await self._get(
            WIDGETS, request_body("refresh", widget_id=widget_id), failure="Failed to refresh widget"
        )
        self._emit("widget:refreshed", env.data)
        return {"success": True, "data": env.data}

    async def get_notifications(self, options: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """List notifications; ``options`` may carry ``unread``, ``type`` and ``limit``."""
        env = await self._get(
            NOTIFICATIONS, request_body("list", options), failure="Failed to fetch notifications"
        )
        return {
            "success": True,
            "notifications": env.data or [],
            "unread_count": env.unread_count or 0,
            "total": env.total or 0,
        }

    async def mark_notifications_read(self, notification_ids: list[Any]) -> dict[str, Any]:
        env = await self._post(
            NOTIFICATIONS,
            request_body("mark_read", ids=list(notification_ids)),
            failure="Failed to mark notifications",
        )
        self._emit("notifications:read", {"ids": list(notification_ids)})
        return {"success": True, "message": env.message or "Notifications marked as read"}

    async def delete_notifications(self, notification_ids: list[Any]) -> dict[str, Any]:
        env = await self._post(
            NOTIFICATIONS,
            request_body("delete", ids=list(notification_ids)),
            failure="Failed to delete notifications",
        )
        self._emit("notifications:deleted", {"ids": list(notification_ids)})
        return {"success": True, "message": env.message or "Notifications deleted"}

    async def update_notification_preferences(
        self, preferences: Mapping[str, Any]
    ) -> dict[str, Any]:
        env = await self._post(
            NOTIFICATIONS,
            request_body("update_preferences", preferences),
            failure="Failed to update preferences",
        )
        return {
            "success": True,
            "preferences": env.data,
            "message": env.message or "Preferences updated",
        }

    async def generate_report(self, report_data: Mapping[str, Any]) -> dict[str, Any] | bytes:
        """Generate a report.

        ``json`` (the default format) returns the report envelope contents;
        any other format (``pdf``, ``csv``) returns the file as bytes.
        """
        fmt = report_data.get("format")
        if fmt and fmt != "json":
            return await self._download(
                REPORTS, request_body("generate", report_data), failure="Failed to generate report"
            )
        env = await self._post(
            REPORTS, request_body("generate", report_data), failure="Failed to generate report"
        )
        return {"success": True, "report": env.data, "metadata": env.metadata or {}}

    async def get_saved_reports(self) -> dict[str, Any]:
        env = await self._get(REPORTS, request_body("list"), failure="Failed to fetch saved reports")
        return {"success": True, "reports": env.data or []}

    async def schedule_report(self, schedule_data: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._post(
            REPORTS, request_body("schedule", schedule_data), failure="Failed to schedule report"
        )
        return {
            "success": True,
            "schedule": env.data,
            "message": env.message or "Report scheduled successfully",
        }

    async def get_metrics(self, options: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Fetch system metrics; ``options`` may carry ``metrics`` (names) and ``period``."""
        params = request_body("get", options)
        if isinstance(params.get("metrics"), (list, tuple)):
            params["metrics"] = ",".join(str(m) for m in params["metrics"])
        env = await self._get(METRICS, params, failure="Failed to fetch metrics")
        return {
            "success": True,
            "metrics": env.data or {},
            "timestamp": env.timestamp or now_iso(),
        }

    async def get_activity_feed(self, options: Mapping[str, Any] | None = None) -> dict[str, Any]:
        env = await self._get(
            DASHBOARDS, request_body("activity_feed", options), failure="Failed to fetch activity feed"
        )
        return {"success": True, "activities": env.data or [], "has_more": bool(env.has_more)}

    async def export_dashboard(self, dashboard_id: int | str) -> dict[str, Any]:
        env = await self._get(
            DASHBOARDS, request_body("export", id=dashboard_id), failure="Failed to export dashboard"
        )
        return {"success": True, "export": env.data}

    async def import_dashboard(self, import_data: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._post(
            DASHBOARDS,
            request_body("import", config=dict(import_data)),
            failure="Failed to import dashboard",
        )
        return {
            "success": True,
            "dashboard": env.data,
            "message": env.message or "Dashboard imported successfully",
        }

    def start_notification_polling(
        self,
        callback: Callable[[list[Any]], Any],
        interval_ms: int | None = None,
    ) -> Callable[[], None]:
        """Deliver notifications newer than the last non-empty check."""

        async def probe(since: Any) -> list[Any]:
            env = await self._get(
                NOTIFICATIONS,
                request_body("check_new", since=since),
                failure="Failed to check notifications",
            )
            return list(env.data or [])

        return self._subscribe(
            NOTIFICATIONS_KEY,
            probe,
            callback,
            interval_ms=resolve_interval(
                interval_ms,
                env="COLLABORA_NOTIFICATIONS_POLL_MS",
                default=DEFAULT_NOTIFICATIONS_POLL_MS,
            ),
            cursor=now_iso(),
            advance=timestamp_cursor,
        )

    def stop_notification_polling(self) -> None:
        self.subscriptions.stop(NOTIFICATIONS_KEY)

    def start_metrics_refresh(
        self,
        callback: Callable[[dict[str, Any]], Any],
        metrics: list[str] | None = None,
        interval_ms: int | None = None,
    ) -> Callable[[], None]:
        """Refresh ``metrics`` every interval; ``callback`` gets every successful snapshot."""
        wanted = list(metrics or [])

        async def probe(last_timestamp: Any) -> list[Any]:
            result = await self.get_metrics({"metrics": wanted})
            return [result]

        def deliver(snapshots: list[Any]) -> Any:
            return callback(snapshots[-1]["metrics"])

        return self._subscribe(
            METRICS_KEY,
            probe,
            deliver,
            interval_ms=resolve_interval(
                interval_ms, env="COLLABORA_METRICS_REFRESH_MS", default=DEFAULT_METRICS_REFRESH_MS
            ),
            advance=lambda snapshots, cursor: snapshots[-1]["timestamp"],
        )

    def stop_metrics_refresh(self) -> None:
        self.subscriptions.stop(METRICS_KEY)

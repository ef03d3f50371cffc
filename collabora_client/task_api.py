from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from collabora_client.common import interval_ms as resolve_interval
from collabora_client.common import json_dumps, now_iso
from collabora_client.facade import FeatureClient, request_body
from collabora_client.subscriptions import timestamp_cursor

TASKS = "tasks.php"

DEFAULT_POLL_MS = 15000


class TaskClient(FeatureClient):
    name = "TaskClient"

    async def get_tasks(self, filters: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """List tasks.

        ``filters`` may carry ``status``, ``priority``, ``assignee``,
        ``project``, ``due_date``, ``sort`` and ``order``.
        """
        env = await self._get(TASKS, request_body("list", filters), failure="Failed to fetch tasks")
        return {"success": True, "tasks": env.data or [], "total": env.total or 0}

    async def get_task(self, task_id: int | str) -> dict[str, Any]:
        env = await self._get(TASKS, request_body("get", id=task_id), failure="Task not found")
        return {"success": True, "task": env.data}

    async def create_task(self, task_data: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._post(TASKS, request_body("create", task_data), failure="Failed to create task")
        self._emit("task:created", env.data)
        return {
            "success": True,
            "task": env.data,
            "message": env.message or "Task created successfully",
        }

    async def update_task(self, task_id: int | str, updates: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._put(
            TASKS, request_body("update", updates, id=task_id), failure="Failed to update task"
        )
        self._emit("task:updated", env.data)
        return {
            "success": True,
            "task": env.data,
            "message": env.message or "Task updated successfully",
        }

    async def delete_task(self, task_id: int | str) -> dict[str, Any]:
        env = await self._delete(TASKS, {"id": task_id}, failure="Failed to delete task")
        self._emit("task:deleted", {"id": task_id})
        return {"success": True, "message": env.message or "Task deleted successfully"}

    async def move_task(
        self,
        task_id: int | str,
        new_status: str,
        position: int | None = None,
        target_column: str | None = None,
    ) -> dict[str, Any]:
        """Move a task to another Kanban column/status."""
        env = await self._post(
            TASKS,
            request_body(
                "move", id=task_id, status=new_status, position=position, column=target_column
            ),
            failure="Failed to move task",
        )
        self._emit("task:moved", env.data)
        return {
            "success": True,
            "task": env.data,
            "message": env.message or "Task moved successfully",
        }

    async def update_status(self, task_id: int | str, status: str) -> dict[str, Any]:
        env = await self._post(
            TASKS,
            request_body("update_status", id=task_id, status=status),
            failure="Failed to update status",
        )
        self._emit("task:status:changed", env.data)
        return {
            "success": True,
            "task": env.data,
            "message": env.message or "Status updated successfully",
        }

    async def assign_task(self, task_id: int | str, user_ids: list[Any]) -> dict[str, Any]:
        env = await self._post(
            TASKS,
            request_body("assign", id=task_id, assignees=list(user_ids)),
            failure="Failed to assign task",
        )
        self._emit("task:assigned", env.data)
        return {
            "success": True,
            "task": env.data,
            "message": env.message or "Task assigned successfully",
        }

    async def add_comment(
        self, task_id: int | str, comment: str, attachments: list[Any] | None = None
    ) -> dict[str, Any]:
        env = await self._post(
            TASKS,
            request_body("add_comment", id=task_id, comment=comment, attachments=attachments or []),
            failure="Failed to add comment",
        )
        self._emit("task:comment:added", env.data)
        return {
            "success": True,
            "comment": env.data,
            "message": env.message or "Comment added successfully",
        }

    async def get_comments(self, task_id: int | str) -> dict[str, Any]:
        env = await self._get(
            TASKS, request_body("get_comments", id=task_id), failure="Failed to fetch comments"
        )
        return {"success": True, "comments": env.data or []}

    async def get_activity(self, task_id: int | str) -> dict[str, Any]:
        env = await self._get(
            TASKS, request_body("get_activity", id=task_id), failure="Failed to fetch activity"
        )
        return {"success": True, "activities": env.data or []}

    async def create_subtask(
        self, parent_id: int | str, subtask_data: Mapping[str, Any]
    ) -> dict[str, Any]:
        env = await self._post(
            TASKS,
            request_body("create_subtask", subtask_data, parent_id=parent_id),
            failure="Failed to create subtask",
        )
        self._emit("task:subtask:created", env.data)
        return {
            "success": True,
            "subtask": env.data,
            "message": env.message or "Subtask created successfully",
        }

    async def get_statistics(self, filters: Mapping[str, Any] | None = None) -> dict[str, Any]:
        env = await self._get(
            TASKS, request_body("statistics", filters), failure="Failed to fetch statistics"
        )
        return {"success": True, "stats": env.data or {}}

    async def bulk_update(self, task_ids: list[Any], updates: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._post(
            TASKS,
            request_body("bulk_update", ids=list(task_ids), updates=dict(updates)),
            failure="Failed to update tasks",
        )
        self._emit("tasks:bulk:updated", env.data)
        return {
            "success": True,
            "updated": env.data_field("count", 0),
            "message": env.message or "Tasks updated successfully",
        }

    async def search_tasks(
        self, query: str, filters: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        env = await self._get(
            TASKS, request_body("search", filters, q=query), failure="Failed to search tasks"
        )
        return {"success": True, "tasks": env.data or [], "total": env.total or 0}

    async def export_tasks(
        self, fmt: str = "csv", filters: Mapping[str, Any] | None = None
    ) -> bytes:
        return await self._download(
            TASKS, request_body("export", filters, format=fmt), failure="Failed to export tasks"
        )

    async def get_templates(self) -> dict[str, Any]:
        env = await self._get(TASKS, request_body("templates"), failure="Failed to fetch templates")
        return {"success": True, "templates": env.data or []}

    async def create_from_template(
        self, template_id: int | str, overrides: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        env = await self._post(
            TASKS,
            request_body("create_from_template", overrides, template_id=template_id),
            failure="Failed to create task from template",
        )
        self._emit("task:created:from:template", env.data)
        return {
            "success": True,
            "task": env.data,
            "message": env.message or "Task created from template",
        }

    def subscribe_to_updates(
        self,
        callback: Callable[[list[Any]], Any],
        filters: Mapping[str, Any] | None = None,
        interval_ms: int | None = None,
    ) -> Callable[[], None]:
        """Poll task changes matching ``filters``.

        One subscription per distinct filter set; subscribing again with the
        same filters replaces the earlier subscription.
        """
        watched = dict(filters or {})

        async def probe(since: Any) -> list[Any]:
            env = await self._get(
                TASKS, request_body("changes", watched, since=since), failure="Failed to fetch changes"
            )
            return list(env.data or [])

        return self._subscribe(
            ("changes", json_dumps(watched)),
            probe,
            callback,
            interval_ms=resolve_interval(
                interval_ms, env="COLLABORA_TASKS_POLL_MS", default=DEFAULT_POLL_MS
            ),
            cursor=now_iso(),
            advance=timestamp_cursor,
        )

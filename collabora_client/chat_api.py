from __future__ import annotations

from collections.abc import Callable, Hashable, Mapping
from typing import Any

from collabora_client.common import interval_ms as resolve_interval
from collabora_client.facade import FeatureClient, request_body
from collabora_client.gateway import FormData, ProgressCallback
from collabora_client.subscriptions import HeartbeatSubscription, last_id_cursor

MESSAGES = "messages.php"
CHAT_POLL = "chat-poll.php"
PRESENCE = "presence.php"

DEFAULT_POLL_MS = 3000
DEFAULT_HEARTBEAT_MS = 30000

HEARTBEAT_KEY: Hashable = ("heartbeat",)


def _room_key(room_id: int | str) -> Hashable:
    return ("messages", str(room_id))


class ChatClient(FeatureClient):
    """Rooms, messages, reactions and presence.

    Message polling keeps one subscription per room; the presence heartbeat
    is a single subscription per client.
    """

    name = "ChatClient"

    async def get_rooms(self, options: Mapping[str, Any] | None = None) -> dict[str, Any]:
        env = await self._get(
            MESSAGES, request_body("get_rooms", options), failure="Failed to fetch chat rooms"
        )
        return {"success": True, "rooms": env.data or [], "unread_total": env.unread_total or 0}

    async def get_messages(
        self, room_id: int | str, options: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Fetch a page of messages; ``options`` may carry ``limit``, ``before``, ``after``."""
        env = await self._get(
            MESSAGES,
            request_body("get_messages", options, room_id=room_id, limit=50),
            failure="Failed to fetch messages",
        )
        return {"success": True, "messages": env.data or [], "has_more": bool(env.has_more)}

    async def send_message(
        self, room_id: int | str, message: str, options: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        env = await self._post(
            MESSAGES,
            request_body("send", options, room_id=room_id, message=message),
            failure="Failed to send message",
        )
        self._emit("chat:message:sent", env.data)
        return {"success": True, "message": env.data}

    async def edit_message(self, message_id: int | str, new_content: str) -> dict[str, Any]:
        env = await self._put(
            MESSAGES,
            request_body("edit", message_id=message_id, content=new_content),
            failure="Failed to edit message",
        )
        self._emit("chat:message:edited", env.data)
        return {"success": True, "message": env.data}

    async def delete_message(self, message_id: int | str) -> dict[str, Any]:
        env = await self._delete(
            MESSAGES, {"message_id": message_id}, failure="Failed to delete message"
        )
        self._emit("chat:message:deleted", {"id": message_id})
        return {"success": True, "message": env.message or "Message deleted"}

    def start_polling(
        self,
        room_id: int | str,
        on_message: Callable[[list[Any]], Any],
        interval_ms: int | None = None,
    ) -> Callable[[], None]:
        """Deliver new messages of ``room_id`` to ``on_message``.

        Replaces any polling already running for the same room. The cursor is
        the id of the last message seen.
        """

        async def probe(last_id: Any) -> list[Any]:
            env = await self._get(
                CHAT_POLL,
                {"room_id": room_id, "last_id": last_id},
                failure="Failed to poll messages",
            )
            return list(env.data_field("messages", []))

        return self._subscribe(
            _room_key(room_id),
            probe,
            on_message,
            interval_ms=resolve_interval(
                interval_ms, env="COLLABORA_CHAT_POLL_MS", default=DEFAULT_POLL_MS
            ),
            advance=last_id_cursor,
        )

    def stop_polling(self, room_id: int | str) -> None:
        self.subscriptions.stop(_room_key(room_id))

    def stop_all_polling(self) -> None:
        self.subscriptions.stop_many(k for k in self.subscriptions.keys() if k != HEARTBEAT_KEY)

    async def mark_as_read(self, room_id: int | str, message_id: int | str) -> dict[str, Any]:
        env = await self._post(
            MESSAGES,
            request_body("mark_read", room_id=room_id, message_id=message_id),
            failure="Failed to mark as read",
        )
        self._emit("chat:messages:read", {"room_id": room_id, "message_id": message_id})
        return {"success": True, "message": env.message or "Marked as read"}

    async def send_typing_indicator(self, room_id: int | str, is_typing: bool = True) -> dict[str, Any]:
        """Best-effort: never raises, reports ``{"success": False}`` on failure."""
        return await self._best_effort(
            MESSAGES, request_body("typing", room_id=room_id, typing=is_typing)
        )

    async def create_room(self, room_data: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._post(
            MESSAGES, request_body("create_room", room_data), failure="Failed to create room"
        )
        self._emit("chat:room:created", env.data)
        return {
            "success": True,
            "room": env.data,
            "message": env.message or "Room created successfully",
        }

    async def update_room(self, room_id: int | str, updates: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._put(
            MESSAGES,
            request_body("update_room", updates, room_id=room_id),
            failure="Failed to update room",
        )
        self._emit("chat:room:updated", env.data)
        return {"success": True, "room": env.data, "message": env.message or "Room updated"}

    async def leave_room(self, room_id: int | str) -> dict[str, Any]:
        env = await self._post(
            MESSAGES, request_body("leave_room", room_id=room_id), failure="Failed to leave room"
        )
        self._emit("chat:room:left", {"room_id": room_id})
        return {"success": True, "message": env.message or "Left room successfully"}

    async def get_presence(self, user_ids: list[Any] | None = None) -> dict[str, Any]:
        users = ",".join(str(u) for u in user_ids or [])
        env = await self._get(
            PRESENCE, request_body("get", users=users), failure="Failed to get presence"
        )
        return {"success": True, "presence": env.data or {}}

    async def update_presence(self, status: str, message: str = "") -> dict[str, Any]:
        env = await self._post(
            PRESENCE,
            request_body("update", status=status, message=message),
            failure="Failed to update presence",
        )
        self._emit("chat:presence:updated", env.data)
        return {"success": True, "message": env.message or "Presence updated"}

    def start_presence_heartbeat(self, interval_ms: int | None = None) -> Callable[[], None]:
        """Report "online" now and every interval until stopped.

        Failed updates are logged and the heartbeat keeps running. Starting a
        new heartbeat replaces the current one.
        """
        heartbeat = HeartbeatSubscription(
            lambda: self.update_presence("online"),
            interval_ms=resolve_interval(
                interval_ms, env="COLLABORA_PRESENCE_HEARTBEAT_MS", default=DEFAULT_HEARTBEAT_MS
            ),
            name=f"{self.name}:presence",
        )
        return self.subscriptions.add(HEARTBEAT_KEY, heartbeat)

    def stop_presence_heartbeat(self) -> None:
        self.subscriptions.stop(HEARTBEAT_KEY)

    async def search_messages(
        self, query: str, options: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        env = await self._get(
            MESSAGES, request_body("search", options, q=query), failure="Failed to search messages"
        )
        return {"success": True, "messages": env.data or [], "total": env.total or 0}

    async def upload_attachment(
        self,
        room_id: int | str,
        file: Any,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        form = FormData(
            fields={"room_id": room_id, "action": "upload_attachment"},
            files={"file": file},
        )
        env = await self._upload(MESSAGES, form, on_progress, failure="Failed to upload attachment")
        return {
            "success": True,
            "attachment": env.data,
            "message": env.message or "Attachment uploaded",
        }

    async def get_unread_counts(self) -> dict[str, Any]:
        env = await self._get(
            MESSAGES, request_body("unread_counts"), failure="Failed to fetch unread counts"
        )
        return {"success": True, "counts": env.data or {}, "total": env.total or 0}

    async def add_reaction(self, message_id: int | str, emoji: str) -> dict[str, Any]:
        env = await self._post(
            MESSAGES,
            request_body("add_reaction", message_id=message_id, emoji=emoji),
            failure="Failed to add reaction",
        )
        self._emit("chat:reaction:added", env.data)
        return {"success": True, "message": env.message or "Reaction added"}

    async def remove_reaction(self, message_id: int | str, emoji: str) -> dict[str, Any]:
        env = await self._post(
            MESSAGES,
            request_body("remove_reaction", message_id=message_id, emoji=emoji),
            failure="Failed to remove reaction",
        )
        self._emit("chat:reaction:removed", env.data)
        return {"success": True, "message": env.message or "Reaction removed"}

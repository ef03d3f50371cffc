from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from collabora_client.facade import FeatureClient, request_body
from collabora_client.gateway import FormData, ProgressCallback

SHARE_LINKS = "share-links.php"
PUBLIC = "public.php"
VERSIONS = "versions.php"
COMMENTS = "comments.php"
APPROVALS = "approvals.php"


class SharingClient(FeatureClient):
    """File sharing: share links, public access, versions, comments, approvals."""

    name = "SharingClient"

    async def create_share_link(self, share_data: Mapping[str, Any]) -> dict[str, Any]:
        """Create a share link.

        ``share_data`` carries ``item_id``, ``item_type`` (file/folder),
        ``permission`` (view/download/edit) and optionally ``expires_at``,
        ``password`` and ``max_downloads``.
        """
        env = await self._post(
            SHARE_LINKS, request_body("create", share_data), failure="Failed to create share link"
        )
        self._emit("sharing:link:created", env.data)
        return {
            "success": True,
            "share": env.data,
            "link": env.data_field("public_url"),
            "token": env.data_field("token"),
            "message": env.message or "Share link created successfully",
        }

    async def get_share_links(self, item_id: int | str, item_type: str = "file") -> dict[str, Any]:
        env = await self._get(
            SHARE_LINKS,
            request_body("list", item_id=item_id, item_type=item_type),
            failure="Failed to fetch share links",
        )
        return {"success": True, "shares": env.data or []}

    async def update_share_link(self, token: str, updates: Mapping[str, Any]) -> dict[str, Any]:
        env = await self._put(
            SHARE_LINKS,
            request_body("update", updates, token=token),
            failure="Failed to update share link",
        )
        self._emit("sharing:link:updated", env.data)
        return {
            "success": True,
            "share": env.data,
            "message": env.message or "Share link updated successfully",
        }

    async def revoke_share_link(self, token: str) -> dict[str, Any]:
        env = await self._delete(SHARE_LINKS, {"token": token}, failure="Failed to revoke share link")
        self._emit("sharing:link:revoked", {"token": token})
        return {"success": True, "message": env.message or "Share link revoked successfully"}

    async def access_public_share(self, token: str, password: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"token": token}
        if password:
            params["password"] = password
        env = await self._get(PUBLIC, params, failure="Failed to access share")
        return {"success": True, "item": env.data, "permissions": env.permissions or []}

    async def download_public_share(self, token: str, password: str | None = None) -> bytes:
        params: dict[str, Any] = {"token": token, "action": "download"}
        if password:
            params["password"] = password
        return await self._download(PUBLIC, params, failure="Failed to download shared file")

    async def share_with_users(
        self, item_id: int | str, item_type: str, users: list[Mapping[str, Any]]
    ) -> dict[str, Any]:
        env = await self._post(
            SHARE_LINKS,
            request_body(
                "share_with_users",
                item_id=item_id,
                item_type=item_type,
                users=[dict(u) for u in users],
            ),
            failure="Failed to share with users",
        )
        self._emit("sharing:users:added", env.data)
        return {
            "success": True,
            "shares": env.data,
            "message": env.message or "Shared with users successfully",
        }

    async def get_versions(self, file_id: int | str) -> dict[str, Any]:
        env = await self._get(
            VERSIONS, request_body("list", file_id=file_id), failure="Failed to fetch versions"
        )
        return {"success": True, "versions": env.data or [], "current": env.current}

    async def upload_version(
        self,
        file_id: int | str,
        file: Any,
        comment: str = "",
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        form = FormData(
            fields={"file_id": file_id, "comment": comment, "action": "upload"},
            files={"file": file},
        )
        env = await self._upload(VERSIONS, form, on_progress, failure="Failed to upload version")
        self._emit("file:version:uploaded", env.data)
        return {
            "success": True,
            "version": env.data,
            "message": env.message or "New version uploaded successfully",
        }

    async def restore_version(self, file_id: int | str, version_id: int | str) -> dict[str, Any]:
        env = await self._post(
            VERSIONS,
            request_body("restore", file_id=file_id, version_id=version_id),
            failure="Failed to restore version",
        )
        self._emit("file:version:restored", env.data)
        return {
            "success": True,
            "file": env.data,
            "message": env.message or "Version restored successfully",
        }

    async def delete_version(self, file_id: int | str, version_id: int | str) -> dict[str, Any]:
        env = await self._delete(
            VERSIONS,
            {"file_id": file_id, "version_id": version_id},
            failure="Failed to delete version",
        )
        self._emit("file:version:deleted", {"file_id": file_id, "version_id": version_id})
        return {"success": True, "message": env.message or "Version deleted successfully"}

    async def get_comments(self, item_id: int | str, item_type: str = "file") -> dict[str, Any]:
        env = await self._get(
            COMMENTS,
            request_body("list", item_id=item_id, item_type=item_type),
            failure="Failed to fetch comments",
        )
        return {"success": True, "comments": env.data or [], "total": env.total or 0}

    async def add_comment(
        self,
        item_id: int | str,
        item_type: str,
        comment: str,
        options: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        env = await self._post(
            COMMENTS,
            request_body("add", options, item_id=item_id, item_type=item_type, comment=comment),
            failure="Failed to add comment",
        )
        self._emit("comment:added", env.data)
        return {
            "success": True,
            "comment": env.data,
            "message": env.message or "Comment added successfully",
        }

    async def edit_comment(self, comment_id: int | str, new_comment: str) -> dict[str, Any]:
        env = await self._put(
            COMMENTS,
            request_body("edit", comment_id=comment_id, comment=new_comment),
            failure="Failed to edit comment",
        )
        self._emit("comment:edited", env.data)
        return {
            "success": True,
            "comment": env.data,
            "message": env.message or "Comment updated successfully",
        }

    async def delete_comment(self, comment_id: int | str) -> dict[str, Any]:
        env = await self._delete(
            COMMENTS, {"comment_id": comment_id}, failure="Failed to delete comment"
        )
        self._emit("comment:deleted", {"comment_id": comment_id})
        return {"success": True, "message": env.message or "Comment deleted successfully"}

    async def request_approval(
        self, file_id: int | str, approval_data: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        env = await self._post(
            APPROVALS,
            request_body("request", approval_data, file_id=file_id),
            failure="Failed to request approval",
        )
        self._emit("approval:requested", env.data)
        return {
            "success": True,
            "approval": env.data,
            "message": env.message or "Approval requested successfully",
        }

    async def get_approvals(self, filters: Mapping[str, Any] | None = None) -> dict[str, Any]:
        env = await self._get(
            APPROVALS, request_body("list", filters), failure="Failed to fetch approvals"
        )
        return {"success": True, "approvals": env.data or [], "pending": env.pending or 0}

    async def respond_to_approval(
        self, approval_id: int | str, decision: str, comment: str = ""
    ) -> dict[str, Any]:
        """Approve or reject; ``decision`` is ``approve`` or ``reject``."""
        env = await self._post(
            APPROVALS,
            request_body("respond", approval_id=approval_id, decision=decision, comment=comment),
            failure="Failed to respond to approval",
        )
        self._emit("approval:responded", env.data)
        return {
            "success": True,
            "approval": env.data,
            "message": env.message or f"File {decision}d successfully",
        }

    async def get_sharing_activity(
        self, item_id: int | str, item_type: str = "file"
    ) -> dict[str, Any]:
        env = await self._get(
            SHARE_LINKS,
            request_body("activity", item_id=item_id, item_type=item_type),
            failure="Failed to fetch sharing activity",
        )
        return {"success": True, "activities": env.data or []}

    async def get_share_statistics(self, token: str) -> dict[str, Any]:
        env = await self._get(
            SHARE_LINKS,
            request_body("statistics", token=token),
            failure="Failed to fetch share statistics",
        )
        return {"success": True, "stats": env.data or {}}

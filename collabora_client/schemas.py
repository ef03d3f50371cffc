from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class Envelope(BaseModel):
    """Normalized response body returned by every JSON endpoint.

    Operation-specific fields the server adds beyond the named ones are kept
    as extras and can be read with ``field()``.
    """

    model_config = ConfigDict(extra="allow")

    success: bool = False
    data: Any = None
    message: str | None = None

    total: int | None = None
    unread_total: int | None = None
    unread_count: int | None = None
    has_more: bool | None = None
    pending: int | None = None
    current: Any = None
    default_id: Any = None
    widgets: list[Any] | None = None
    permissions: list[Any] | None = None
    metadata: dict[str, Any] | None = None
    timestamp: str | None = None
    redirect: str | None = None

    def field(self, name: str, default: Any = None) -> Any:
        value = getattr(self, name, None)
        if value is None and self.model_extra:
            value = self.model_extra.get(name)
        return default if value is None else value

    def data_field(self, name: str, default: Any = None) -> Any:
        """Read ``name`` from a mapping ``data`` payload."""
        if isinstance(self.data, dict):
            value = self.data.get(name)
            if value is not None:
                return value
        return default

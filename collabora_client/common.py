from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

DEFAULT_API_BASE = "http://localhost/collabora/api"


class ErrorCode(StrEnum):
    TRANSPORT = "TRANSPORT"
    ENDPOINT_NOT_FOUND = "ENDPOINT_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    APPLICATION = "APPLICATION"


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def env_int(name: str, *, default: int, min_value: int | None = None) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as e:  # pragma: no cover
            raise ValueError(f"{name} must be an int") from e
    if min_value is not None and value < min_value:
        raise ValueError(f"{name} must be >= {min_value}")
    return value


def env_str(name: str, *, default: str) -> str:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value


def env_optional_str(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    return value


def interval_ms(explicit: int | None, *, env: str, default: int) -> int:
    """Resolve a polling interval: explicit argument, then env var, then default."""
    if explicit is not None:
        if explicit <= 0:
            raise ValueError("interval_ms must be > 0")
        return explicit
    return env_int(env, default=default, min_value=1)


def json_dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=True, separators=(",", ":"), sort_keys=True)

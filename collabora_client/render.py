from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import click

# Colors for different senders (cycles through these)
SENDER_COLORS = ["cyan", "magenta", "yellow", "green", "blue", "red"]


class SenderPalette:
    """Assigns each sender a stable color in first-seen order."""

    def __init__(self, colors: Sequence[str] = SENDER_COLORS) -> None:
        self._colors = list(colors)
        self._assigned: dict[str, str] = {}

    def color(self, sender: str) -> str:
        if sender not in self._assigned:
            self._assigned[sender] = self._colors[len(self._assigned) % len(self._colors)]
        return self._assigned[sender]


def _sender(msg: Mapping[str, Any]) -> str:
    for key in ("user_name", "sender_name", "sender", "user_id"):
        value = msg.get(key)
        if value not in (None, ""):
            return str(value)
    return "unknown"


def _content(msg: Mapping[str, Any]) -> str:
    value = msg.get("content")
    if value is None:
        value = msg.get("message", "")
    return str(value)


def _clock(value: Any) -> str | None:
    # Server timestamps look like "2024-05-01 09:30:12" or ISO-8601.
    if not isinstance(value, str) or len(value) < 19:
        return None
    return value[11:19]


def format_message(
    msg: Mapping[str, Any],
    *,
    palette: SenderPalette | None = None,
    full: bool = False,
    styled: bool = True,
) -> str:
    """Format a chat message as one line (or a header plus indented body when ``full``)."""
    sender = _sender(msg)
    content = _content(msg)

    seq = f"[{msg.get('id', '?')}]"
    parts = [click.style(seq, dim=True) if styled else seq]
    if styled:
        color = (palette or SenderPalette()).color(sender)
        parts.append(click.style(sender, fg=color, bold=True))
    else:
        parts.append(sender)
    ts = _clock(msg.get("created_at"))
    if ts:
        parts.append(click.style(ts, dim=True) if styled else ts)
    header = " ".join(parts)

    if full:
        body = "\n".join(f"    {line}" for line in content.split("\n"))
        return f"{header}:\n{body}"

    # First line of content for preview, or full content if short
    lines = content.split("\n")
    preview = lines[0][:80] + " ..." if len(lines) > 1 else content[:100]
    return f"{header}: {preview}"


def format_notification(item: Mapping[str, Any]) -> str:
    title = str(item.get("title") or item.get("type") or "notification")
    body = str(item.get("message") or item.get("body") or "").split("\n")[0]
    marker = "*" if not item.get("is_read") else " "
    text = f"{marker} {title}"
    return f"{text}: {body}" if body else text


def table(rows: Sequence[Mapping[str, Any]], headers: Sequence[str]) -> list[str]:
    """Render ``rows`` as left-aligned text columns (numbers right-aligned)."""
    cols = {h: len(h) for h in headers}
    for r in rows:
        for h in headers:
            cols[h] = max(cols[h], len(_cell_text(r.get(h))))

    def _cell(key: str, val: Any) -> str:
        s = _cell_text(val)
        return s.rjust(cols[key]) if isinstance(val, (int, float)) else s.ljust(cols[key])

    lines = [" ".join(h.ljust(cols[h]) for h in headers).rstrip()]
    for r in rows:
        lines.append(" ".join(_cell(h, r.get(h)) for h in headers).rstrip())
    return lines


def _cell_text(val: Any) -> str:
    return "" if val is None else str(val)

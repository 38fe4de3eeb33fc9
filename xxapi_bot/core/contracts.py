from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Protocol


def parse_command(text: str) -> str:
    """First token without the leading '/' or '.' and any '@botname' suffix."""

    parts = text.strip().split(maxsplit=1)
    if not parts:
        return ""
    head = parts[0].lstrip("/.")
    return head.split("@", 1)[0]


@dataclass(frozen=True)
class MessageContext:
    channel: str
    chat_id: int
    message_id: int
    sender_id: int | None
    text: str
    ts: datetime
    is_group: bool = False
    # Image sources attached to the message: http(s) URLs or data: URLs.
    images: tuple[str, ...] = field(default_factory=tuple)

    @property
    def command(self) -> str:
        return parse_command(self.text)

    @property
    def args(self) -> list[str]:
        return self.text.strip().split()[1:]


@dataclass(frozen=True)
class Reply:
    text: str | None = None
    # Local file path, http(s) URL or data: URL.
    image: str | None = None


ReplyFn = Callable[[MessageContext, Reply], Awaitable[None]]


class Plugin(Protocol):
    name: str
    enabled: bool
    priority: int

    async def on_message(self, ctx: MessageContext) -> list[Reply] | None: ...


class Channel(Protocol):
    """A connected bot session able to deliver messages."""

    name: str

    async def send_text(self, destination: str, text: str) -> int | None: ...

    async def send_image(self, destination: str, image: str, *, caption: str | None = None) -> int | None: ...

    async def list_groups(self) -> list[str]: ...

from __future__ import annotations

import base64
import io
import logging
from datetime import datetime, timezone

from telethon import TelegramClient, events

from .config import Config
from .core.contracts import MessageContext
from .domain.figurine import to_data_url
from .errors import DeliveryError


def _peer(destination: str) -> int | str:
    dest = destination.strip()
    if dest.lstrip("-").isdigit():
        return int(dest)
    return dest


def _image_file(image: str):
    # data: URLs are uploaded as in-memory files; paths and http(s) URLs go to telethon as-is.
    if image.startswith("data:image/"):
        header, _, encoded = image.partition(",")
        ext = header[len("data:image/"):].split(";", 1)[0] or "jpeg"
        buf = io.BytesIO(base64.b64decode(encoded))
        buf.name = f"image.{ext}"
        return buf
    return image


class TGAdapter:
    """One logged-in bot account; implements the `Channel` protocol."""

    def __init__(self, config: Config, logger: logging.Logger, *, token: str, index: int) -> None:
        self._config = config
        self._logger = logger
        self._token = token
        self._client = TelegramClient(
            f"{config.tg_session_prefix}_{index}", config.tg_api_id, config.tg_api_hash
        )
        self._me_id: int | None = None
        self._known_groups: dict[str, None] = {}
        self.name = f"bot{index}"

    @property
    def me_id(self) -> int | None:
        return self._me_id

    def on_new_message(self, handler) -> None:
        @self._client.on(events.NewMessage(incoming=True))
        async def _wrapped(event) -> None:
            await handler(self, event)

        @self._client.on(events.ChatAction())
        async def _joined(event) -> None:
            if (event.user_added or event.user_joined) and self._me_id in (event.user_ids or []):
                self._remember_group(event.chat_id)
                self._logger.info("bot_joined_group channel=%s chat_id=%s", self.name, event.chat_id)

    async def start(self) -> None:
        await self._client.start(bot_token=self._token)
        me = await self._client.get_me()
        self._me_id = me.id
        self.name = me.username or f"bot{me.id}"
        self._logger.info("bound_bot name=%s me_id=%s", self.name, me.id)

    async def run_forever(self) -> None:
        await self._client.run_until_disconnected()

    async def stop(self) -> None:
        await self._client.disconnect()

    def _remember_group(self, chat_id: int | None) -> None:
        if chat_id is not None:
            self._known_groups[str(chat_id)] = None

    async def list_groups(self) -> list[str]:
        # Bots cannot enumerate dialogs; broadcast reaches the groups seen since start.
        return list(self._known_groups)

    async def send_text(self, destination: str, text: str) -> int | None:
        if self._config.dry_run:
            self._logger.info(">> [%s] %s: %s (dry-run)", self.name, destination, text)
            return None
        try:
            msg = await self._client.send_message(_peer(destination), text)
        except Exception as exc:
            raise DeliveryError(f"{self.name} 发送到 {destination} 失败") from exc
        mid = getattr(msg, "id", None)
        return mid if isinstance(mid, int) and mid > 0 else None

    async def send_image(self, destination: str, image: str, *, caption: str | None = None) -> int | None:
        if self._config.dry_run:
            self._logger.info(">> [%s] %s: <image %s> (dry-run)", self.name, destination, image[:80])
            return None
        try:
            msg = await self._client.send_file(_peer(destination), _image_file(image), caption=caption)
        except Exception as exc:
            raise DeliveryError(f"{self.name} 发送图片到 {destination} 失败") from exc
        mid = getattr(msg, "id", None)
        return mid if isinstance(mid, int) and mid > 0 else None

    async def build_context(self, event, *, fetch_photo: bool = False) -> MessageContext:
        text = event.raw_text or ""
        is_group = bool(getattr(event, "is_group", False) or getattr(event, "is_channel", False))
        if is_group:
            self._remember_group(event.chat_id)

        images: tuple[str, ...] = ()
        if fetch_photo and getattr(event, "photo", None) is not None:
            try:
                data = await event.download_media(file=bytes)
            except Exception:
                self._logger.exception("photo_download_failed channel=%s chat_id=%s", self.name, event.chat_id)
                data = None
            if data:
                images = (to_data_url(data),)

        msg_date = getattr(getattr(event, "message", None), "date", None)
        ts = msg_date if isinstance(msg_date, datetime) else datetime.now(timezone.utc)

        return MessageContext(
            channel=self.name,
            chat_id=event.chat_id,
            message_id=event.message.id,
            sender_id=event.sender_id,
            text=text,
            ts=ts,
            is_group=is_group,
            images=images,
        )

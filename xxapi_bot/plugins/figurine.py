from __future__ import annotations

import logging
import time
from typing import Callable

from ..config import Config
from ..core.contracts import MessageContext, Reply, ReplyFn, parse_command
from ..core.expiring import ExpiringRegistry
from ..core.http import HttpClient
from ..core.scheduler import Scheduler
from ..domain.figurine import extract_images, parse_result, parse_style, to_api_source
from ..errors import XxapiError


class FigurinePlugin:
    """手办化1-4：把用户发送的图片交给手办化接口处理。

    - 指令消息自带图片：直接处理
    - 否则登记等待（默认 10 秒），期间该用户发送的下一张图片继续处理
    - 处理成功后该用户在冷却时间内不能再次发起
    """

    name = "figurine"
    priority = 60

    MSG_BUSY = "手办化正在处理中，请等待当前任务完成后再试"
    MSG_PROCESSING = "正在生成手办化图片，请稍候..."
    MSG_TIMEOUT = "等待超时，请重新发送指令"
    MSG_FAILED = "手办化处理失败，请检查图片链接是否有效或稍后重试"

    def __init__(
        self,
        config: Config,
        logger: logging.Logger,
        *,
        http: HttpClient,
        scheduler: Scheduler,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._logger = logger
        self._http = http
        self._scheduler = scheduler
        self.enabled = bool(config.figurine_api_key)

        self._send: ReplyFn | None = None
        # user -> requested style
        self._waits: ExpiringRegistry[int, int] = ExpiringRegistry(clock)
        self._busy: ExpiringRegistry[int, str] = ExpiringRegistry(clock)

        if self.enabled:
            self._logger.info(
                "figurine_plugin_enabled wait_seconds=%s cooldown_seconds=%s",
                config.figurine_wait_seconds,
                config.figurine_cooldown_seconds,
            )

    def bootstrap(self, send: ReplyFn) -> None:
        self._send = send

    async def shutdown(self) -> None:
        for user_id in self._waits.keys():
            await self._scheduler.cancel(self._wait_key(user_id))
        self._waits.clear()
        self._busy.clear()

    @staticmethod
    def _wait_key(user_id: int) -> str:
        return f"figurine.wait.{user_id}"

    def is_busy(self, user_id: int) -> bool:
        return user_id in self._busy

    def is_waiting(self, user_id: int) -> bool:
        return user_id in self._waits

    def wants_photo(self, sender_id: int | None, text: str) -> bool:
        """Whether the adapter should download an attached photo for this message."""

        if not self.enabled or sender_id is None:
            return False
        return parse_style(parse_command(text)) is not None or self.is_waiting(sender_id)

    async def on_message(self, ctx: MessageContext) -> list[Reply] | None:
        user_id = ctx.sender_id
        if user_id is None:
            return None

        images = list(ctx.images) + extract_images(ctx.text)
        style = parse_style(ctx.command)

        if style is not None:
            if self.is_busy(user_id):
                return [Reply(text=self.MSG_BUSY)]
            self._logger.info("figurine_request user=%s style=%s images=%s", user_id, style, len(images))
            if images:
                return await self._process(ctx, user_id, images[0], style)
            return [await self._wait_for_image(ctx, user_id, style)]

        if images:
            pending = self._waits.pop(user_id)
            if pending is not None:
                await self._scheduler.cancel(self._wait_key(user_id))
                return await self._process(ctx, user_id, images[0], pending)
        return None

    async def _wait_for_image(self, ctx: MessageContext, user_id: int, style: int) -> Reply:
        wait_seconds = self._config.figurine_wait_seconds

        self._busy.register(user_id, "waiting", None)
        self._waits.register(user_id, style, wait_seconds)

        async def _expire() -> None:
            await self._expire_wait(ctx, user_id)

        await self._scheduler.schedule(
            key=self._wait_key(user_id), delay_seconds=wait_seconds, action=_expire
        )
        return Reply(text=f"请发送一张图片，我将使用风格{style}进行手办化处理（{wait_seconds}秒内有效）")

    async def _expire_wait(self, ctx: MessageContext, user_id: int) -> None:
        self._waits.remove(user_id)
        # The wait entry may already be pruned; the busy flag is what marks it open.
        if self._busy.get(user_id) != "waiting":
            return
        self._busy.remove(user_id)
        self._logger.info("figurine_wait_expired user=%s", user_id)
        await self._notify(ctx, Reply(text=self.MSG_TIMEOUT))

    async def _process(self, ctx: MessageContext, user_id: int, source: str, style: int) -> list[Reply]:
        self._busy.register(user_id, "processing", None)
        await self._notify(ctx, Reply(text=self.MSG_PROCESSING))

        try:
            api_source = to_api_source(source)
            payload = await self._http.get_json(
                self._config.figurine_api,
                params={"style": str(style), "url": api_source, "key": self._config.figurine_api_key},
                timeout=30,
            )
        except XxapiError as exc:
            self._logger.warning("figurine_failed user=%s style=%s error=%s", user_id, style, exc)
            self._busy.remove(user_id)
            return [Reply(text=self.MSG_FAILED)]
        except Exception:
            self._logger.exception("figurine_failed user=%s style=%s", user_id, style)
            self._busy.remove(user_id)
            return [Reply(text=self.MSG_FAILED)]

        image_url, error = parse_result(payload)
        if image_url is None:
            self._logger.warning("figurine_api_error user=%s style=%s reply=%s", user_id, style, error)
            self._busy.remove(user_id)
            return [Reply(text=error)]

        self._busy.register(user_id, "cooldown", self._config.figurine_cooldown_seconds)
        self._logger.info("figurine_done user=%s style=%s", user_id, style)
        return [Reply(image=image_url)]

    async def _notify(self, ctx: MessageContext, reply: Reply) -> None:
        if self._send is None:
            self._logger.warning("figurine_notify_dropped reason=no_sender text=%s", reply.text)
            return
        await self._send(ctx, reply)

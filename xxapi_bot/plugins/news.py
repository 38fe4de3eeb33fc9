from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from ..config import Config, PushConfig
from ..core.contracts import Channel, MessageContext, Reply
from ..core.delivery import DeliveryReport, deliver
from ..core.http import HttpClient
from ..core.scheduler import Scheduler
from ..core.store import FileStore
from ..domain.news import NewsImageService
from ..domain.push import PushScheduler
from ..errors import XxapiError


class NewsPlugin:
    """今日新闻：每日新闻图片（按日期缓存）+ 定时自动推送。"""

    name = "news"
    priority = 50

    CMD_TODAY = "今日新闻"
    CMD_CLEAR = "清空缓存"
    CMD_PUSH = "手动推送"
    CMD_DEBUG = "调试推送"

    TEST_TIMER_SECONDS = 5.0

    def __init__(
        self,
        config: Config,
        logger: logging.Logger,
        *,
        http: HttpClient,
        scheduler: Scheduler,
        channels: Sequence[Channel],
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._logger = logger
        self._channels = channels
        self.enabled = True

        self.service = NewsImageService(
            http, FileStore(config.cache_dir), config.news_api, logger, clock=clock
        )
        self.push = PushScheduler(scheduler, config.news_push, self.push_cycle, logger, clock=clock)

        if config.news_push.enabled:
            self._logger.info(
                "news_push_enabled send_time=%s targets=%s",
                config.news_push.send_time,
                ",".join(config.news_push.destinations) or "-",
            )

    async def bootstrap(self) -> None:
        await self.push.start()

    async def update_config(self, push_config: PushConfig) -> None:
        self._logger.info(
            "news_push_config_updated enabled=%s send_time=%s targets=%s",
            push_config.enabled,
            push_config.send_time,
            ",".join(push_config.destinations) or "-",
        )
        await self.push.apply_config(push_config)

    async def shutdown(self) -> None:
        await self.push.disarm()

    async def push_cycle(self) -> DeliveryReport | None:
        destinations = self.push.config.destinations
        if not destinations:
            self._logger.info("news_push_skip reason=no_target_groups")
            return None

        image = await self.service.get_today_image()
        report = await deliver(self._channels, destinations, str(image.path), self._logger)
        self._logger.info(
            "news_push_done delivered=%s failed=%s",
            len(report.delivered),
            len(report.failed),
        )
        return report

    async def on_message(self, ctx: MessageContext) -> list[Reply] | None:
        cmd = ctx.command
        if cmd == self.CMD_TODAY:
            return [await self._today()]
        if cmd == self.CMD_CLEAR:
            return [Reply(text=self._clear_cache())]
        if cmd == self.CMD_PUSH:
            return [Reply(text=await self._manual_push())]
        if cmd == self.CMD_DEBUG:
            return [Reply(text=await self._debug(ctx.args))]
        return None

    async def _today(self) -> Reply:
        try:
            image = await self.service.get_today_image()
        except XxapiError as exc:
            self._logger.warning("news_today_failed error=%s", exc)
            return Reply(text="获取今日新闻失败，请稍后重试")
        except Exception:
            self._logger.exception("news_today_failed")
            return Reply(text="获取今日新闻失败，请稍后重试")
        return Reply(image=str(image.path))

    def _clear_cache(self) -> str:
        try:
            count = self.service.clear_cache()
        except XxapiError as exc:
            self._logger.error("news_cache_clear_failed error=%s", exc)
            return "清空缓存失败"
        return f"已清空 {count} 个缓存文件"

    async def _manual_push(self) -> str:
        self._logger.info("news_manual_push")
        try:
            report = await self.push_cycle()
        except XxapiError as exc:
            self._logger.error("news_manual_push_failed error=%s", exc)
            return f"手动推送失败: {exc}"
        except Exception:
            self._logger.exception("news_manual_push_failed")
            return "手动推送失败，请稍后重试"
        if report is None:
            return "手动推送完成（未配置目标群组）"
        return f"手动推送完成: 成功 {len(report.delivered)} 个，失败 {len(report.failed)} 个"

    async def _debug(self, args: list[str]) -> str:
        option = args[0] if args else "-s"
        if option == "-t":
            return await self._test_push()
        if option == "-r":
            if self.push.config.enabled:
                await self.push.arm()
            else:
                await self.push.disarm()
            self._logger.info("news_push_timer_reset")
            return f"定时器已重置\n{self.status_text()}"
        if option == "-timer":
            await self.push.fire_in(self.TEST_TIMER_SECONDS)
            return f"测试定时器已设置，{int(self.TEST_TIMER_SECONDS)}秒后触发自动推送功能"
        return self.status_text()

    async def _test_push(self) -> str:
        try:
            image = await self.service.get_today_image()
        except XxapiError as exc:
            self._logger.error("news_test_push_failed error=%s", exc)
            return f"测试推送失败: {exc}"
        return f"测试推送成功!\n图片路径: {image.path}\n配置状态: {self.status_text()}"

    def status_text(self) -> str:
        status = self.push.status()
        rows = [
            ("自动推送启用", "是" if status.enabled else "否"),
            ("发送时间", status.send_time),
            ("下次发送时间", status.next_send.strftime("%Y-%m-%d %H:%M:%S")),
            ("目标群组", ", ".join(status.destinations) if status.destinations else "未配置"),
            ("定时器状态", "运行中" if status.armed else "未运行"),
            ("缓存目录", str(self.service.cache_dir)),
            ("已缓存日期", ", ".join(self.service.cached_dates()) or "无"),
        ]
        return "自动推送状态:\n" + "\n".join(f"{k}: {v}" for k, v in rows)

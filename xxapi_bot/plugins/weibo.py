from __future__ import annotations

import logging

from ..config import Config
from ..core.contracts import MessageContext, Reply
from ..core.http import BROWSER_UA, HttpClient
from ..domain.weibo import format_hot_search
from ..errors import XxapiError


class WeiboPlugin:
    name = "weibo"
    priority = 40

    CMD = "微博热搜"

    def __init__(self, config: Config, logger: logging.Logger, *, http: HttpClient) -> None:
        self._config = config
        self._logger = logger
        self._http = http
        self.enabled = True

    async def on_message(self, ctx: MessageContext) -> list[Reply] | None:
        if ctx.command != self.CMD:
            return None
        try:
            payload = await self._http.get_json(
                self._config.weibo_api, headers={"User-Agent": BROWSER_UA}, timeout=10
            )
            text = format_hot_search(payload)
        except XxapiError as exc:
            self._logger.warning("weibo_fetch_failed error=%s", exc)
            return [Reply(text=f"获取微博热搜数据失败: {exc}")]
        except Exception:
            self._logger.exception("weibo_fetch_failed")
            return [Reply(text="获取微博热搜失败，请稍后重试")]
        return [Reply(text=text)]

from __future__ import annotations

import logging

from ..config import Config
from ..core.contracts import MessageContext, Reply
from ..core.http import BROWSER_UA, HttpClient
from ..domain.gold import format_bank_prices, parse_bank_prices
from ..errors import XxapiError


class GoldPlugin:
    name = "gold"
    priority = 40

    CMD = "今日金价"

    def __init__(self, config: Config, logger: logging.Logger, *, http: HttpClient) -> None:
        self._config = config
        self._logger = logger
        self._http = http
        self.enabled = True

    async def on_message(self, ctx: MessageContext) -> list[Reply] | None:
        if ctx.command != self.CMD:
            return None
        return [Reply(text=await self.today_text())]

    async def today_text(self) -> str:
        try:
            payload = await self._http.get_json(
                self._config.gold_api, headers={"User-Agent": BROWSER_UA}, timeout=10
            )
            prices = parse_bank_prices(payload)
        except XxapiError as exc:
            self._logger.warning("gold_fetch_failed error=%s", exc)
            return f"获取金价数据失败: {exc}"
        except Exception:
            self._logger.exception("gold_fetch_failed")
            return "获取金价失败，请稍后重试"

        text = format_bank_prices(prices, self._config.gold_bank_keyword)
        self._logger.debug("gold_prices total=%s keyword=%s", len(prices), self._config.gold_bank_keyword)
        return text

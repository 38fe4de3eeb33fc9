from __future__ import annotations

import asyncio
import logging
import re
import signal
from collections import deque

from .config import Config
from .core.contracts import MessageContext, Reply
from .core.dispatcher import Dispatcher
from .core.http import HttpClient
from .core.scheduler import Scheduler
from .errors import ConfigError, DeliveryError
from .tg_adapter import TGAdapter
from .plugins.figurine import FigurinePlugin
from .plugins.gold import GoldPlugin
from .plugins.news import NewsPlugin
from .plugins.weibo import WeiboPlugin


class _FocusFilter(logging.Filter):
    """Only show 'interesting' info logs (commands + bot replies).

    - INFO: allow only lines starting with ">>" (sent) or "<<" (received)
    - WARNING/ERROR: always allow

    Users can set LOG_LEVEL=DEBUG to see full logs.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if record.levelno >= logging.WARNING:
            return True
        msg = record.getMessage()
        return msg.startswith(">>") or msg.startswith("<<")


def _setup_logging(level: str) -> logging.Logger:
    fmt = "%(asctime)s %(levelname)s %(message)s"

    # Keep third-party logs quiet by default; show warnings/errors only.
    logging.basicConfig(level=logging.WARNING, format=fmt)
    for noisy in ("telethon", "asyncio", "aiohttp"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger("xxapi_bot")
    numeric_level = getattr(logging, level, logging.INFO)
    logger.setLevel(numeric_level)
    logger.propagate = False

    handler = logging.StreamHandler()
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(fmt))
    if numeric_level >= logging.INFO and numeric_level != logging.DEBUG:
        handler.addFilter(_FocusFilter())
    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


_WS_RE = re.compile(r"\s+")


def _short_text(text: str, max_chars: int = 160) -> str:
    text = _WS_RE.sub(" ", text).strip()
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1] + "…"


async def run() -> None:
    config = Config.load()
    logger = _setup_logging(config.log_level)

    scheduler = Scheduler(logger)
    http = HttpClient(logger, timeout_seconds=config.http_timeout_seconds)

    adapters = [
        TGAdapter(config, logger, token=token, index=idx)
        for idx, token in enumerate(config.tg_bot_tokens, start=1)
    ]

    news = NewsPlugin(config, logger, http=http, scheduler=scheduler, channels=adapters)
    gold = GoldPlugin(config, logger, http=http)
    weibo = WeiboPlugin(config, logger, http=http)
    figurine = FigurinePlugin(config, logger, http=http, scheduler=scheduler)

    plugins = [
        figurine,
        news,
        gold,
        weibo,
    ]
    dispatcher = Dispatcher(plugins, logger)

    # Several bots in one group all receive the same message; handle it once.
    recent_seen: deque[tuple[str, int, int]] = deque(maxlen=200)
    recent_seen_set: set[tuple[str, int, int]] = set()

    def _first_sighting(key: tuple[str, int, int]) -> bool:
        if key in recent_seen_set:
            return False
        if len(recent_seen) == recent_seen.maxlen:
            recent_seen_set.discard(recent_seen.popleft())
        recent_seen.append(key)
        recent_seen_set.add(key)
        return True

    def _adapter_for(name: str) -> TGAdapter:
        for adapter in adapters:
            if adapter.name == name:
                return adapter
        return adapters[0]

    async def _reply(ctx: MessageContext, reply: Reply) -> None:
        adapter = _adapter_for(ctx.channel)
        dest = str(ctx.chat_id)
        try:
            if reply.image:
                await adapter.send_image(dest, reply.image, caption=reply.text)
                logger.info(">> [%s] %s: <image>", adapter.name, dest)
            elif reply.text:
                await adapter.send_text(dest, reply.text)
                logger.info(">> [%s] %s: %s", adapter.name, dest, _short_text(reply.text))
        except DeliveryError as exc:
            logger.warning("reply_failed channel=%s chat_id=%s error=%s", adapter.name, dest, exc.__cause__ or exc)

    async def _on_event(adapter: TGAdapter, event) -> None:
        in_group = bool(event.is_group or event.is_channel)
        if not _first_sighting(("" if in_group else adapter.name, event.chat_id, event.message.id)):
            return

        ctx = await adapter.build_context(
            event, fetch_photo=figurine.wants_photo(event.sender_id, event.raw_text or "")
        )
        if config.enable_log:
            logger.info(
                "<< [%s] %s/%s: %s",
                ctx.channel,
                ctx.chat_id if ctx.is_group else "私聊",
                ctx.sender_id,
                _short_text(ctx.text) or ("<image>" if ctx.images else "<media>"),
            )

        replies = await dispatcher.dispatch(ctx)
        if replies:
            logger.debug("rx command=%s replies=%s", ctx.command, len(replies))
        for reply in replies:
            await _reply(ctx, reply)

    background: set[asyncio.Task[None]] = set()

    async def _reload() -> None:
        try:
            new_config = Config.load(reload=True)
        except ConfigError as exc:
            logger.error("config_reload_failed error=%s", exc)
            return
        await news.update_config(new_config.news_push)
        logger.warning("config_reloaded note=only NEWS_* push settings apply without restart")

    def _on_sighup() -> None:
        task = asyncio.create_task(_reload())
        background.add(task)
        task.add_done_callback(background.discard)

    sighup = getattr(signal, "SIGHUP", None)
    if sighup is not None:
        try:
            asyncio.get_running_loop().add_signal_handler(sighup, _on_sighup)
        except NotImplementedError:
            logger.debug("sighup_reload_unavailable")

    figurine.bootstrap(_reply)
    for adapter in adapters:
        adapter.on_new_message(_on_event)
        await adapter.start()
    await news.bootstrap()
    try:
        await asyncio.gather(*(adapter.run_forever() for adapter in adapters))
    finally:
        await news.shutdown()
        await figurine.shutdown()
        await scheduler.cancel_all()
        await http.close()
        for adapter in adapters:
            await adapter.stop()


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\n已退出。")
        raise SystemExit(0)
    except ConfigError as exc:
        print(f"[config error] {exc}")
        print("请先复制 .env.example 为 .env 并填写必要配置，然后重新运行。")
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()

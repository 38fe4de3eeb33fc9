from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable

from ..core.http import HttpClient
from ..core.store import FileStore
from ..errors import PersistError, UpstreamError


@dataclass(frozen=True)
class NewsImage:
    date: date
    path: Path
    cached: bool


def cache_key(day: date) -> str:
    return f"{day.isoformat()}.jpg"


def parse_digest_image_url(payload: Any) -> str:
    """Extract data.image from the daily digest response `{code, data: {image}}`."""

    if not isinstance(payload, dict):
        raise UpstreamError("获取新闻数据失败: 数据格式错误")
    code = payload.get("code")
    data = payload.get("data")
    image = data.get("image") if isinstance(data, dict) else None
    if code != 200 or not isinstance(image, str) or not image.strip():
        raise UpstreamError("获取新闻数据失败")
    return image.strip()


class NewsImageService:
    """Daily news image, cached on disk once per local calendar date."""

    def __init__(
        self,
        http: HttpClient,
        store: FileStore,
        api_url: str,
        logger: logging.Logger,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._http = http
        self._store = store
        self._api_url = api_url
        self._logger = logger
        self._clock = clock
        # Collapses concurrent misses: the second caller sees the file written by the first.
        self._lock = asyncio.Lock()

    @property
    def cache_dir(self) -> Path:
        return self._store.directory

    async def get_today_image(self) -> NewsImage:
        today = self._clock().date()
        key = cache_key(today)

        if self._store.exists(key):
            self._logger.debug("news_cache_hit date=%s", today)
            return NewsImage(date=today, path=self._store.path_for(key), cached=True)

        async with self._lock:
            if self._store.exists(key):
                self._logger.debug("news_cache_hit date=%s after_wait=1", today)
                return NewsImage(date=today, path=self._store.path_for(key), cached=True)

            self._logger.info("news_cache_miss date=%s api=%s", today, self._api_url)
            payload = await self._http.get_json(self._api_url)
            try:
                image_url = parse_digest_image_url(payload)
            except UpstreamError:
                code = payload.get("code") if isinstance(payload, dict) else None
                self._logger.error("news_api_bad_payload code=%s", code)
                raise

            self._logger.info("news_image_download url=%s", image_url)
            data = await self._http.get_bytes(image_url)
            if not data:
                raise UpstreamError("获取新闻图片失败: 图片为空")
            path = self._store.write(key, data)
            self._logger.info("news_image_cached date=%s bytes=%s", today, len(data))
            return NewsImage(date=today, path=path, cached=False)

    def clear_cache(self) -> int:
        keys = self._store.list()
        for key in keys:
            self._store.delete(key)
        self._logger.info("news_cache_cleared count=%s", len(keys))
        return len(keys)

    def cached_dates(self) -> list[str]:
        try:
            keys = self._store.list()
        except PersistError:
            return []
        return [k.rsplit(".", 1)[0] for k in keys]

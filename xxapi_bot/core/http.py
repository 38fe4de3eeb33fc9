from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

import aiohttp

from ..errors import NetworkError, UpstreamError


BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class HttpClient:
    """Thin GET-only wrapper over one shared aiohttp session.

    Transport failures and timeouts become `NetworkError`; non-200 statuses and
    undecodable bodies become `UpstreamError`.
    """

    def __init__(self, logger: logging.Logger, *, timeout_seconds: float = 10) -> None:
        self._logger = logger
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None,
        headers: Mapping[str, str] | None,
        timeout: float | None,
        as_json: bool,
    ) -> Any:
        client_timeout = aiohttp.ClientTimeout(total=timeout or self._timeout_seconds)
        self._logger.debug("http_get url=%s params=%s", url, _redact(params))
        try:
            async with self._get_session().get(
                url, params=params, headers=headers, timeout=client_timeout
            ) as resp:
                if resp.status != 200:
                    raise UpstreamError(f"HTTP状态码 {resp.status}")
                if as_json:
                    try:
                        return await resp.json(content_type=None)
                    except ValueError as exc:
                        raise UpstreamError("返回数据不是有效的JSON") from exc
                return await resp.read()
        except asyncio.TimeoutError as exc:
            raise NetworkError("请求超时") from exc
        except aiohttp.ClientError as exc:
            raise NetworkError(f"网络请求失败: {type(exc).__name__}") from exc

    async def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        return await self._get(url, params=params, headers=headers, timeout=timeout, as_json=True)

    async def get_bytes(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> bytes:
        return await self._get(url, params=None, headers=headers, timeout=timeout, as_json=False)


def _redact(params: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if params is None:
        return None
    return {k: ("***" if k == "key" else _short(v)) for k, v in params.items()}


def _short(value: Any, max_chars: int = 80) -> Any:
    if isinstance(value, str) and len(value) > max_chars:
        return value[: max_chars - 1] + "…"
    return value

from __future__ import annotations

import base64
import re
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from ..errors import UnsupportedError


STYLES = (1, 2, 3, 4)

_URL_RE = re.compile(r"https?://\S+\.(?:jpg|jpeg|png|gif|webp)", re.IGNORECASE)
_DATA_URL_RE = re.compile(r"data:image/[^;\s]+;base64,[A-Za-z0-9+/=]+", re.IGNORECASE)

_MIME_BY_EXT = {
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


def parse_style(command: str) -> int | None:
    """'手办化3' -> 3."""

    if not command.startswith("手办化"):
        return None
    rest = command[len("手办化"):]
    if not rest.isdigit():
        return None
    style = int(rest)
    return style if style in STYLES else None


def extract_images(text: str) -> list[str]:
    """Image URLs first, then base64 data URLs, as they appear in the text."""

    if not text:
        return []
    return _URL_RE.findall(text) + _DATA_URL_RE.findall(text)


def to_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def to_api_source(source: str) -> str:
    """Turn an image source into something the figurine API accepts (URL or data URL)."""

    if source.startswith(("http://", "https://", "data:image/")):
        return source
    if source.startswith("file://"):
        path = Path(unquote(urlparse(source).path))
        ext = path.suffix.lstrip(".").lower()
        return to_data_url(path.read_bytes(), _MIME_BY_EXT.get(ext, "image/jpeg"))
    raise UnsupportedError("不支持的图片格式")


def parse_result(payload: Any) -> tuple[str | None, str | None]:
    """Return (image_url, error_message); exactly one of them is set."""

    if not isinstance(payload, dict):
        return None, "手办化失败: 未知错误"
    if payload.get("code") != 200:
        return None, f"手办化失败: {payload.get('msg') or '未知错误'}"
    data = payload.get("data")
    if not data or not isinstance(data, str):
        return None, "手办化失败: 未获取到生成图片"
    return data, None

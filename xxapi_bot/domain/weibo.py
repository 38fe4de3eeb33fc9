from __future__ import annotations

from typing import Any

from ..errors import UpstreamError


def format_hot_search(payload: Any) -> str:
    """'🔥 微博热搜榜' followed by '<index>. <title>' lines, in upstream order."""

    if not isinstance(payload, dict) or payload.get("code") != 200:
        code = payload.get("code") if isinstance(payload, dict) else None
        raise UpstreamError(f"API返回状态码 {code if code is not None else '未知'}")

    data = payload.get("data")
    if not data:
        raise UpstreamError("数据为空")
    if not isinstance(data, list):
        raise UpstreamError("数据格式错误")

    lines = ["🔥 微博热搜榜", ""]
    for item in data:
        if isinstance(item, dict) and item.get("index") and item.get("title"):
            lines.append(f"{item['index']}. {item['title']}")
    return "\n".join(lines).strip()

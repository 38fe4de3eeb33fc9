from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..errors import UpstreamError


@dataclass(frozen=True)
class BankGoldPrice:
    bank: str
    price: str


def parse_bank_prices(payload: Any) -> list[BankGoldPrice]:
    """Parse the gold price response into bank gold bar prices."""

    if not isinstance(payload, dict) or payload.get("code") != 200:
        code = payload.get("code") if isinstance(payload, dict) else None
        raise UpstreamError(f"API返回状态码 {code if code is not None else '未知'}")

    data = payload.get("data")
    items = data.get("bank_gold_bar_price") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise UpstreamError("数据为空")

    prices: list[BankGoldPrice] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        bank = item.get("bank")
        if not bank:
            continue
        prices.append(BankGoldPrice(bank=str(bank), price=str(item.get("price", ""))))
    return prices


def format_bank_prices(prices: list[BankGoldPrice], keyword: str) -> str:
    matched = [p for p in prices if keyword in p.bank]
    if not matched:
        return f"未找到{keyword}相关金价信息"
    return "\n".join(f"今日{p.bank}: {p.price}" for p in matched)

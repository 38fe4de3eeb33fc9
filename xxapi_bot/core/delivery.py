from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ..config import WILDCARD
from .contracts import Channel


@dataclass
class DeliveryReport:
    # destination -> name of the channel that delivered it
    delivered: dict[str, str] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)


async def _broadcast_targets(channels: Sequence[Channel], logger: logging.Logger) -> list[str]:
    targets: list[str] = []
    seen: set[str] = set()
    for channel in channels:
        try:
            groups = await channel.list_groups()
        except Exception:
            logger.exception("delivery_list_groups_failed channel=%s", channel.name)
            continue
        for group in groups:
            if group not in seen:
                seen.add(group)
                targets.append(group)
    return targets


async def deliver(
    channels: Sequence[Channel],
    destinations: Sequence[str],
    image: str,
    logger: logging.Logger,
    *,
    caption: str | None = None,
) -> DeliveryReport:
    """Send `image` to every destination, first working channel wins.

    Never raises: per-destination failures are logged and recorded in the report.
    """

    report = DeliveryReport()
    if not destinations:
        logger.info("delivery_skip reason=no_destinations")
        return report

    if WILDCARD in destinations:
        targets = await _broadcast_targets(channels, logger)
        logger.info("delivery_broadcast targets=%s", len(targets))
        if not targets:
            logger.warning("delivery_broadcast_empty reason=no_known_groups channels=%s", len(channels))
            return report
    else:
        targets = list(destinations)

    if not channels:
        logger.error("delivery_no_channels destinations=%s", ",".join(targets))
        report.failed.extend(targets)
        return report

    for dest in targets:
        for channel in channels:
            try:
                await channel.send_image(dest, image, caption=caption)
            except Exception as exc:
                logger.warning(
                    "delivery_channel_failed channel=%s dest=%s error=%s", channel.name, dest, exc
                )
                continue
            report.delivered[dest] = channel.name
            logger.info(">> image to %s via %s", dest, channel.name)
            break
        else:
            report.failed.append(dest)
            logger.error("delivery_failed dest=%s reason=all_channels_failed", dest)
    return report

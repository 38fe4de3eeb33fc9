from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from ..config import PushConfig
from ..core.scheduler import Scheduler


PUSH_KEY = "news.push"


def next_fire_at(now: datetime, hour: int, minute: int) -> datetime:
    """Next local (hour, minute); a target equal to `now` counts as passed."""

    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return target


def seconds_until_next(now: datetime, hour: int, minute: int) -> float:
    return (next_fire_at(now, hour, minute) - now).total_seconds()


@dataclass(frozen=True)
class PushStatus:
    enabled: bool
    send_time: str
    next_send: datetime
    destinations: tuple[str, ...]
    armed: bool
    target: datetime | None


class PushScheduler:
    """Daily push timer: Disarmed or Armed with exactly one pending task.

    The pending task lives in the shared `Scheduler` under `PUSH_KEY`; arming
    always replaces it, so duplicate timers cannot exist. While a cycle is
    running, reconfiguring only records the new target; the cycle is never
    cut short and arms that target itself once it finishes.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: PushConfig,
        on_fire: Callable[[], Awaitable[object]],
        logger: logging.Logger,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._scheduler = scheduler
        self._config = config
        self._on_fire = on_fire
        self._logger = logger
        self._clock = clock
        self._target: datetime | None = None
        self._firing = False

    @property
    def config(self) -> PushConfig:
        return self._config

    @property
    def target(self) -> datetime | None:
        return self._target

    @property
    def armed(self) -> bool:
        return self._target is not None and self._scheduler.is_pending(PUSH_KEY)

    async def start(self) -> None:
        if self._config.enabled:
            await self.arm()

    async def arm(self, *, after: datetime | None = None) -> datetime:
        now = self._clock()
        base = now if after is None or after < now else after
        target = next_fire_at(base, *self._config.time_of_day)
        await self._arm_at(target, now)
        return target

    async def fire_in(self, seconds: float) -> datetime:
        """One-shot arm `seconds` from now; the regular schedule resumes after it fires."""

        now = self._clock()
        target = now + timedelta(seconds=seconds)
        await self._arm_at(target, now)
        return target

    async def _arm_at(self, target: datetime, now: datetime) -> None:
        delay = max(0.0, (target - now).total_seconds())
        self._target = target
        if self._firing:
            # The running cycle owns PUSH_KEY and schedules `_target` when it ends.
            self._logger.info("push_rearm_deferred target=%s", target.strftime("%Y-%m-%d %H:%M:%S"))
            return
        self._logger.info(
            "push_armed now=%s target=%s delay_minutes=%s",
            now.strftime("%Y-%m-%d %H:%M:%S"),
            target.strftime("%Y-%m-%d %H:%M:%S"),
            round(delay / 60),
        )
        await self._scheduler.schedule(key=PUSH_KEY, delay_seconds=delay, action=self._fire)

    async def disarm(self) -> None:
        self._target = None
        if self._firing:
            self._logger.info("push_disarm_deferred")
            return
        if await self._scheduler.cancel(PUSH_KEY):
            self._logger.info("push_disarmed")

    async def apply_config(self, config: PushConfig) -> None:
        self._config = config
        if config.enabled:
            await self.arm()
        else:
            await self.disarm()

    async def _fire(self) -> None:
        fired_target = self._target
        self._logger.info("push_fired target=%s", fired_target)
        self._firing = True
        try:
            await self._on_fire()
        except Exception:
            self._logger.exception("push_cycle_failed target=%s", fired_target)
        finally:
            self._firing = False

        if self._target is not fired_target:
            # Re-armed or disarmed while the cycle was running.
            if self._target is not None:
                await self._arm_at(self._target, self._clock())
            return
        if self._config.enabled:
            await self.arm(after=fired_target)
        else:
            self._target = None

    def status(self) -> PushStatus:
        armed = self.armed
        if armed and self._target is not None:
            next_send = self._target
        else:
            next_send = next_fire_at(self._clock(), *self._config.time_of_day)
        return PushStatus(
            enabled=self._config.enabled,
            send_time=self._config.send_time,
            next_send=next_send,
            destinations=self._config.destinations,
            armed=armed,
            target=self._target,
        )

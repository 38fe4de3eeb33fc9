import asyncio
import logging
import unittest
from datetime import datetime, timedelta

from xxapi_bot.config import PushConfig
from xxapi_bot.core.scheduler import Scheduler
from xxapi_bot.domain.push import PUSH_KEY, PushScheduler, next_fire_at, seconds_until_next


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestNextFire(unittest.TestCase):
    def test_later_today(self) -> None:
        self.assertEqual(seconds_until_next(datetime(2026, 10, 16, 7, 0), 8, 0), 3600)

    def test_already_passed_rolls_to_tomorrow(self) -> None:
        self.assertEqual(seconds_until_next(datetime(2026, 10, 16, 9, 0), 8, 0), 23 * 3600)

    def test_exact_time_counts_as_passed(self) -> None:
        now = datetime(2026, 10, 16, 8, 0)
        self.assertEqual(next_fire_at(now, 8, 0), datetime(2026, 10, 17, 8, 0))

    def test_seconds_are_truncated(self) -> None:
        now = datetime(2026, 10, 16, 7, 59, 30, 500000)
        self.assertEqual(next_fire_at(now, 8, 0), datetime(2026, 10, 16, 8, 0))

    def test_month_rollover(self) -> None:
        now = datetime(2026, 10, 31, 23, 0)
        self.assertEqual(next_fire_at(now, 6, 30), datetime(2026, 11, 1, 6, 30))


class TestPushScheduler(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.logger = logging.getLogger("test")
        self.scheduler = Scheduler(self.logger)
        # 50ms before the 08:00 push.
        self.clock = FakeClock(datetime(2026, 10, 16, 7, 59, 59, 950000))
        self.fired: list[datetime] = []
        self.delivered: list[str] = []

    async def asyncTearDown(self) -> None:
        await self.scheduler.cancel_all()

    async def _on_fire(self) -> None:
        self.fired.append(self.clock.now)

    def _push(self, config: PushConfig, on_fire=None) -> PushScheduler:
        return PushScheduler(
            self.scheduler, config, on_fire or self._on_fire, self.logger, clock=self.clock
        )

    def _pending_tasks(self) -> int:
        return sum(1 for task in self.scheduler._tasks.values() if not task.done())

    async def test_disabled_config_stays_disarmed(self) -> None:
        push = self._push(PushConfig(enabled=False, time_of_day=(8, 0)))
        await push.start()
        self.assertFalse(push.armed)
        self.assertIsNone(push.target)

    async def test_fire_rearms_exactly_one_day_later(self) -> None:
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)))
        await push.start()
        self.assertEqual(push.target, datetime(2026, 10, 16, 8, 0))

        await asyncio.sleep(0.2)

        self.assertEqual(len(self.fired), 1)
        self.assertTrue(push.armed)
        self.assertEqual(push.target, datetime(2026, 10, 17, 8, 0))
        self.assertEqual(self._pending_tasks(), 1)

    async def test_failed_cycle_still_rearms(self) -> None:
        async def boom() -> None:
            raise RuntimeError("upstream down")

        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)), on_fire=boom)
        with self.assertLogs("test", level="ERROR") as logs:
            await push.start()
            await asyncio.sleep(0.2)

        self.assertTrue(any("push_cycle_failed" in line for line in logs.output))
        self.assertTrue(push.armed)
        self.assertEqual(push.target, datetime(2026, 10, 17, 8, 0))
        self.assertEqual(self._pending_tasks(), 1)

    async def test_late_firing_rearms_for_following_day(self) -> None:
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)))
        await push.start()
        # The loop woke up late: the clock is already past the target.
        self.clock.now = datetime(2026, 10, 16, 8, 0, 3)
        await asyncio.sleep(0.2)
        self.assertEqual(push.target, datetime(2026, 10, 17, 8, 0))

    async def test_disable_while_armed_stops_firing(self) -> None:
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)))
        await push.start()
        self.assertTrue(push.armed)

        await push.apply_config(PushConfig(enabled=False, time_of_day=(8, 0)))
        await asyncio.sleep(0.2)

        self.assertEqual(self.fired, [])
        self.assertFalse(push.armed)
        self.assertFalse(self.scheduler.is_pending(PUSH_KEY))

    async def test_enable_arms_from_current_time(self) -> None:
        self.clock.now = datetime(2026, 10, 16, 9, 0)
        push = self._push(PushConfig(enabled=False, time_of_day=(8, 0)))
        await push.start()

        await push.apply_config(PushConfig(enabled=True, time_of_day=(8, 0), destinations=("-1001",)))

        self.assertTrue(push.armed)
        self.assertEqual(push.target, datetime(2026, 10, 17, 8, 0))
        self.assertEqual(self._pending_tasks(), 1)

    async def test_reconfigure_replaces_timer(self) -> None:
        self.clock.now = datetime(2026, 10, 16, 7, 0)
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)))
        await push.start()
        await push.apply_config(PushConfig(enabled=True, time_of_day=(7, 30)))
        await push.apply_config(PushConfig(enabled=True, time_of_day=(21, 15)))

        self.assertEqual(push.target, datetime(2026, 10, 16, 21, 15))
        self.assertEqual(self._pending_tasks(), 1)

    async def _slow_cycle(self) -> None:
        for dest in ("A", "B", "C"):
            await asyncio.sleep(0.05)
            self.delivered.append(dest)

    async def test_reconfigure_during_cycle_lets_it_finish(self) -> None:
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)), on_fire=self._slow_cycle)
        await push.start()

        await asyncio.sleep(0.08)
        await push.apply_config(PushConfig(enabled=True, time_of_day=(9, 0)))
        self.assertEqual(push.target, datetime(2026, 10, 16, 9, 0))
        await asyncio.sleep(0.4)

        self.assertEqual(self.delivered, ["A", "B", "C"])
        self.assertTrue(push.armed)
        self.assertEqual(push.target, datetime(2026, 10, 16, 9, 0))
        self.assertEqual(self._pending_tasks(), 1)

    async def test_disable_during_cycle_lets_it_finish(self) -> None:
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)), on_fire=self._slow_cycle)
        await push.start()

        await asyncio.sleep(0.08)
        await push.apply_config(PushConfig(enabled=False, time_of_day=(8, 0)))
        await asyncio.sleep(0.4)

        self.assertEqual(self.delivered, ["A", "B", "C"])
        self.assertFalse(push.armed)
        self.assertIsNone(push.target)
        self.assertFalse(self.scheduler.is_pending(PUSH_KEY))

    async def test_test_timer_during_cycle_fires_after_it(self) -> None:
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)), on_fire=self._slow_cycle)
        await push.start()

        await asyncio.sleep(0.08)
        await push.fire_in(0)
        await asyncio.sleep(0.5)

        # First cycle completes, then the test timer runs a second one.
        self.assertEqual(self.delivered, ["A", "B", "C", "A", "B", "C"])
        self.assertEqual(push.target, datetime(2026, 10, 16, 8, 0))
        self.assertEqual(self._pending_tasks(), 1)

    async def test_shutdown_cancels_pending_fire(self) -> None:
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)))
        await push.start()
        await self.scheduler.cancel_all()
        await asyncio.sleep(0.2)
        self.assertEqual(self.fired, [])
        self.assertFalse(push.armed)

    async def test_test_timer_resumes_regular_schedule(self) -> None:
        self.clock.now = datetime(2026, 10, 16, 7, 0)
        push = self._push(PushConfig(enabled=True, time_of_day=(8, 0)))
        await push.start()

        target = await push.fire_in(0.05)
        self.assertEqual(target, self.clock.now + timedelta(seconds=0.05))
        await asyncio.sleep(0.2)

        self.assertEqual(len(self.fired), 1)
        self.assertEqual(push.target, datetime(2026, 10, 16, 8, 0))
        self.assertEqual(self._pending_tasks(), 1)

    async def test_test_timer_when_disabled_fires_once(self) -> None:
        push = self._push(PushConfig(enabled=False, time_of_day=(8, 0)))
        await push.fire_in(0.01)
        await asyncio.sleep(0.1)
        self.assertEqual(len(self.fired), 1)
        self.assertFalse(push.armed)
        self.assertIsNone(push.target)


if __name__ == "__main__":
    unittest.main()

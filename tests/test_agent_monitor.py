import asyncio
import unittest
from tempfile import TemporaryDirectory

from tasktokens.utilities.agent_monitor import AgentMonitor
from tests.helpers import make_container, make_seed


class TestAgentMonitor(unittest.IsolatedAsyncioTestCase):
    async def test_observer_is_told_only_about_changes(self) -> None:
        availability = iter([False, False, True, True, False])
        changes = []

        async def probe():
            return next(availability)

        monitor = AgentMonitor(probe, interval=0.01, observer=changes.append)
        for _ in range(5):
            await monitor.check_once()

        self.assertEqual([True, False, True], changes)
        self.assertTrue(monitor.agent_missing)

    async def test_probe_errors_count_as_missing(self) -> None:
        async def probe():
            raise ConnectionError("agent not running")

        monitor = AgentMonitor(probe, interval=0.01)
        self.assertFalse(await monitor.check_once())
        self.assertTrue(monitor.agent_missing)

    async def test_start_and_stop(self) -> None:
        calls = 0

        async def probe():
            nonlocal calls
            calls += 1
            return True

        monitor = AgentMonitor(probe, interval=0.01)
        task = monitor.start()
        self.assertIs(task, monitor.start())
        await asyncio.sleep(0.05)
        await monitor.stop()

        self.assertGreater(calls, 1)
        self.assertFalse(monitor.is_running)
        stopped_at = calls
        await asyncio.sleep(0.03)
        self.assertEqual(stopped_at, calls)

    async def test_failing_observer_does_not_stop_polling(self) -> None:
        calls = 0
        availability = [True, False]

        async def probe():
            nonlocal calls
            calls += 1
            return availability[calls % 2]

        def observer(missing):
            raise RuntimeError("observer broke")

        monitor = AgentMonitor(probe, interval=0.01, observer=observer)
        monitor.start()
        await asyncio.sleep(0.1)

        self.assertTrue(monitor.is_running)
        self.assertGreater(calls, 2)
        await monitor.stop()
        self.assertFalse(monitor.is_running)

    async def test_does_not_block_engine_operations(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            container = make_container(tmp_dir, make_seed())
            container.agent_monitor.start()
            try:
                task = await container.engine.create_task("Buy milk", 1000)
                await container.engine.complete_task(task)
            finally:
                await container.agent_monitor.stop()
            self.assertFalse(container.agent_monitor.agent_missing)

    async def test_missing_identity_reports_missing_agent(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            container = make_container(tmp_dir, None)
            self.assertFalse(await container.agent_monitor.check_once())
            self.assertTrue(container.agent_monitor.agent_missing)


if __name__ == '__main__':
    unittest.main()

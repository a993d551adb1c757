import asyncio
from typing import Awaitable, Callable, Optional
from loguru import logger
import tasktokens.configuration.constants as global_constants

AgentProbe = Callable[[], Awaitable[bool]]
AgentObserver = Callable[[bool], None]

class AgentMonitor:
    """
    Periodically checks whether the user's wallet agent is available.
    Runs independently of task operations and only reports a flag to its observer.

    Whoever calls start() owns the monitor and must await stop() on shutdown.
    The CLI is one-shot and only calls check_once() for its status command.
    """

    def __init__(
            self,
            probe: AgentProbe,
            interval: float = global_constants.AGENT_POLL_INTERVAL,
            observer: Optional[AgentObserver] = None
        ):
        self.probe = probe
        self.interval = interval
        self.observer = observer
        self.agent_missing = False
        self.monitor_task: Optional[asyncio.Task] = None
        self._shutdown = False

    @property
    def is_running(self) -> bool:
        return self.monitor_task is not None and not self.monitor_task.done()

    def start(self) -> asyncio.Task:
        """Start the monitor as an asyncio task"""
        if self.is_running:
            return self.monitor_task
        self._shutdown = False
        self.monitor_task = asyncio.create_task(self.monitor(), name="AgentMonitor")
        return self.monitor_task

    async def stop(self):
        """Stop the monitor and wait for it to finish"""
        self._shutdown = True
        if self.monitor_task is None:
            return
        self.monitor_task.cancel()
        try:
            await self.monitor_task
        except asyncio.CancelledError:
            pass
        self.monitor_task = None

    async def check_once(self) -> bool:
        """Run the probe once and update the flag. Returns True if the agent is available."""
        try:
            available = bool(await self.probe())
        except Exception as e:
            logger.warning(f"AgentMonitor.check_once: Agent probe failed: {e}")
            available = False

        missing = not available
        if missing != self.agent_missing:
            self.agent_missing = missing
            if missing:
                logger.info("AgentMonitor: Wallet agent not found")
            else:
                logger.info("AgentMonitor: Wallet agent available")
            if self.observer:
                try:
                    self.observer(missing)
                except Exception as e:
                    logger.error(f"AgentMonitor.check_once: Observer failed: {e}")
        return available

    async def monitor(self):
        while not self._shutdown:
            await self.check_once()
            await asyncio.sleep(self.interval)

from typing import Callable, Iterator, Optional
from loguru import logger
from tasktokens.models.models import Task

TaskListener = Callable[[list[Task]], None]

class TaskCollection:
    """
    Newest-first cache of the user's tasks.
    The ledger is the source of truth; this collection is rebuilt from it on every listing.
    """

    def __init__(self):
        self._tasks: list[Task] = []
        self._listeners: list[TaskListener] = []

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self.snapshot())

    def __contains__(self, task: Task) -> bool:
        return self.index_of(task) is not None

    def snapshot(self) -> list[Task]:
        return list(self._tasks)

    def index_of(self, task: Task) -> Optional[int]:
        """Position of this exact task instance, or None"""
        for index, candidate in enumerate(self._tasks):
            if candidate is task:
                return index
        return None

    def prepend(self, task: Task):
        if task.token is None:
            raise ValueError("Cannot add a task without a token")
        self._tasks.insert(0, task)
        self._notify()

    def replace(self, tasks: list[Task]):
        self._tasks = list(tasks)
        self._notify()

    def remove(self, task: Task) -> bool:
        """Remove this exact task instance. Returns False if it is not in the collection."""
        index = self.index_of(task)
        if index is None:
            return False
        del self._tasks[index]
        self._notify()
        return True

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"TaskCollection._notify: Listener {listener!r} failed: {e}")

"""
Sync Task Handle.

Wraps the running sync tasks of one NamedSyncGroup. The underlying tasks come
from an external sync engine and are only known through the SyncTask
protocol: an identity, start/stop, and a stream of (type, action, data) log
events delivered through a callback.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from ..errors import TaskStartError, TaskStopError
from ..models.config import NamedSyncGroup, SyncDefinition
from .router import LogCallback

logger = logging.getLogger(__name__)


@runtime_checkable
class SyncTask(Protocol):
    """A running unit of the external sync engine for one sync definition"""

    task_id: str

    @property
    def is_running(self) -> bool:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


# (task_id, definition, log callback) -> task
SyncTaskFactory = Callable[[str, SyncDefinition, LogCallback], SyncTask]


class SyncTaskHandle:
    """
    Owns the sync tasks of one sync group.

    A handle belongs to exactly one ConfigEntry. Constructing it never starts
    anything; tasks are created lazily on first start. Once released, the
    handle refuses to start again, so a torn-down entry can never leak a
    running task.
    """

    def __init__(
        self,
        config_path: Path,
        group: NamedSyncGroup,
        task_factory: SyncTaskFactory,
        log_callback: LogCallback
    ):
        """
        Initialize the handle.

        Args:
            config_path: Path of the configuration file owning the group
            group: The sync group whose definitions this handle runs
            task_factory: Builds one engine task per sync definition
            log_callback: Receives (type, action, data) events from the tasks
        """
        self.config_path = Path(config_path)
        self.group = group
        self._task_factory = task_factory
        self._log_callback = log_callback
        self._tasks: Dict[int, SyncTask] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._released = False

    @property
    def identity(self) -> Tuple[str, str]:
        """(config path, group name)"""
        return (str(self.config_path), self.group.name)

    @property
    def is_released(self) -> bool:
        return self._released

    def task_id(self, index: int) -> str:
        """Identity of the task for the definition at ``index``"""
        return f"{self.config_path}::{self.group.name}::{index}"

    def _targets(self, definition: Optional[SyncDefinition]) -> List[Tuple[int, SyncDefinition]]:
        definitions = list(enumerate(self.group.sync_definitions))
        if definition is None:
            return definitions
        targets = [(index, d) for index, d in definitions if d is definition]
        if not targets:
            raise ValueError(f"Definition {definition.source_path} does not belong to group '{self.group.name}'")
        return targets

    def _lock_for(self, index: int) -> asyncio.Lock:
        # One start/stop at a time per definition
        lock = self._locks.get(index)
        if lock is None:
            lock = self._locks[index] = asyncio.Lock()
        return lock

    def _get_or_create_task(self, index: int, definition: SyncDefinition) -> SyncTask:
        task = self._tasks.get(index)
        if task is None:
            task = self._task_factory(self.task_id(index), definition, self._log_callback)
            self._tasks[index] = task
        return task

    async def start_syncs(self, definition: Optional[SyncDefinition] = None) -> int:
        """
        Start one definition's task, or every task of the group.

        Every sibling is attempted even if one fails. Starts and stops of the
        same definition never overlap: a second start waits for the first and
        then finds the task running.

        Args:
            definition: Definition to start, or None for all

        Returns:
            Number of tasks started by this call

        Raises:
            TaskStartError: If any task failed to start
        """
        started = 0
        failures: List[Tuple[SyncDefinition, BaseException]] = []

        for index, target in self._targets(definition):
            try:
                async with self._lock_for(index):
                    if await self._start_one(index, target):
                        started += 1
            except Exception as e:
                failures.append((target, e))

        if failures:
            raise TaskStartError(failures, self.group.name)
        return started

    async def _start_one(self, index: int, target: SyncDefinition) -> bool:
        if self._released:
            raise RuntimeError("task handle has been released")

        task = self._get_or_create_task(index, target)
        if task.is_running:
            target.active = True
            return False

        try:
            await task.start()
        except Exception as e:
            logger.warning(f"Failed to start {task.task_id}: {e}")
            target.active = False
            raise

        # Released while the start was pending: do not leave it running
        if self._released:
            await self._stop_quietly(task)
            raise RuntimeError("task handle released during start")

        target.active = True
        logger.debug(f"Started {task.task_id}")
        return True

    async def stop_syncs(self, definition: Optional[SyncDefinition] = None) -> int:
        """
        Stop one definition's task, or every task of the group.

        A stop issued while a start of the same definition is pending waits
        for that start and then stops the task.

        Args:
            definition: Definition to stop, or None for all

        Returns:
            Number of tasks stopped by this call

        Raises:
            TaskStopError: If any task failed to stop
        """
        stopped = 0
        failures: List[Tuple[SyncDefinition, BaseException]] = []

        for index, target in self._targets(definition):
            async with self._lock_for(index):
                task = self._tasks.get(index)
                if task is None or not task.is_running:
                    target.active = False
                    continue

                try:
                    await task.stop()
                except Exception as e:
                    logger.warning(f"Failed to stop {task.task_id}: {e}")
                    failures.append((target, e))
                    continue

                target.active = False
                stopped += 1
                logger.debug(f"Stopped {task.task_id}")

        if failures:
            raise TaskStopError(failures, self.group.name)
        return stopped

    async def release(self) -> None:
        """
        Stop every task and drop them. The handle cannot be started again.

        Raises:
            TaskStopError: If any task failed to stop (tasks are dropped anyway)
        """
        self._released = True
        try:
            await self.stop_syncs()
        finally:
            self._tasks.clear()

    async def _stop_quietly(self, task: SyncTask) -> None:
        try:
            await task.stop()
        except Exception as e:
            logger.warning(f"Failed to stop {task.task_id} after release: {e}")

    def running_definitions(self) -> List[SyncDefinition]:
        """Definitions whose task is currently running"""
        return [
            definition
            for index, definition in enumerate(self.group.sync_definitions)
            if index in self._tasks and self._tasks[index].is_running
        ]

    @property
    def running_count(self) -> int:
        return len(self.running_definitions())

    def get_status(self) -> Dict[str, Any]:
        """Get handle status information"""
        return {
            "config_path": str(self.config_path),
            "group": self.group.name,
            "definitions": len(self.group.sync_definitions),
            "running": self.running_count,
            "released": self._released
        }

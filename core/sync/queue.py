"""
Orchestrator Event Channel.

Single FIFO channel that every event source sends into and the orchestrator's
dispatch loop consumes from. Events are delivered in the order they were sent.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .events import EventKind, OrchestratorEvent

logger = logging.getLogger(__name__)


@dataclass
class ChannelMetrics:
    """Metrics for monitoring channel throughput"""
    total_events_sent: int = 0
    total_events_received: int = 0
    total_events_dropped: int = 0
    max_size_reached: int = 0
    events_by_kind: Dict[EventKind, int] = field(default_factory=lambda: defaultdict(int))


class EventChannel:
    """
    Asynchronous FIFO channel for orchestrator events.

    Features:
    - Ordered delivery (first sent, first received)
    - Size limit to bound memory
    - Thread-safe sending for watchdog observer threads
    - Completion tracking so callers can wait until every event is handled
    """

    def __init__(self, max_size: int = 1000):
        """
        Initialize the event channel.

        Args:
            max_size: Maximum number of pending events (0 for unbounded)
        """
        self.max_size = max_size
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

        self.metrics = ChannelMetrics()
        self._start_time = datetime.now()

    @property
    def is_active(self) -> bool:
        """Check if the channel is accepting events"""
        return self._running

    async def start(self) -> None:
        """Bind the channel to the running loop and start accepting events"""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.max_size)
        self._running = True
        logger.info(f"Started EventChannel (max_size={self.max_size})")

    async def stop(self) -> None:
        """Stop accepting events. Pending events are discarded."""
        if not self._running:
            return
        self._running = False
        dropped = self._drain()
        if dropped:
            logger.info(f"Discarded {dropped} pending events on stop")
        logger.info("Stopped EventChannel")

    def send(self, event: OrchestratorEvent) -> bool:
        """
        Send an event from the event loop thread.

        Args:
            event: Event to send

        Returns:
            True if the event was accepted, False if the channel is stopped or full
        """
        if not self._running or self._queue is None:
            logger.debug(f"Channel inactive, dropping event: {event}")
            self.metrics.total_events_dropped += 1
            return False

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Channel full ({self._queue.qsize()} events), dropping event: {event}")
            self.metrics.total_events_dropped += 1
            return False

        self.metrics.total_events_sent += 1
        self.metrics.events_by_kind[event.kind] += 1
        self.metrics.max_size_reached = max(self.metrics.max_size_reached, self._queue.qsize())
        logger.debug(f"Sent event: {event} (pending: {self._queue.qsize()})")
        return True

    def send_threadsafe(self, event: OrchestratorEvent) -> bool:
        """
        Send an event from a foreign thread (e.g. a watchdog observer).

        Returns:
            True if the event was scheduled for delivery
        """
        loop = self._loop
        if not self._running or loop is None or loop.is_closed():
            logger.debug(f"No event loop available, dropping event: {event}")
            return False
        try:
            loop.call_soon_threadsafe(self.send, event)
        except RuntimeError as e:
            # Event loop might be closing
            if "closed" not in str(e).lower():
                logger.error(f"Failed to schedule event on loop: {e}")
            return False
        return True

    async def receive(self, timeout: Optional[float] = None) -> Optional[OrchestratorEvent]:
        """
        Receive the next event.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            The next event, or None on timeout or if the channel is stopped
        """
        if not self._running or self._queue is None:
            return None
        try:
            if timeout is None:
                event = await self._queue.get()
            else:
                event = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

        self.metrics.total_events_received += 1
        return event

    def task_done(self) -> None:
        """Mark a received event as fully handled"""
        if self._queue is not None:
            try:
                self._queue.task_done()
            except ValueError:
                logger.debug("task_done called more times than events received")

    async def join(self) -> None:
        """Wait until every sent event has been received and marked done"""
        if self._queue is not None:
            await self._queue.join()

    def _drain(self) -> int:
        if self._queue is None:
            return 0
        count = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            count += 1
        self.metrics.total_events_dropped += count
        return count

    def size(self) -> int:
        """Get number of pending events"""
        return self._queue.qsize() if self._queue is not None else 0

    def is_empty(self) -> bool:
        return self.size() == 0

    def get_metrics(self) -> Dict[str, Any]:
        """Get channel metrics"""
        uptime = (datetime.now() - self._start_time).total_seconds()
        return {
            "current_size": self.size(),
            "max_size_reached": self.metrics.max_size_reached,
            "events_sent": self.metrics.total_events_sent,
            "events_received": self.metrics.total_events_received,
            "events_dropped": self.metrics.total_events_dropped,
            "events_by_kind": {kind.value: count for kind, count in self.metrics.events_by_kind.items()},
            "uptime_seconds": uptime
        }

    def __len__(self) -> int:
        return self.size()

    async def __aenter__(self):
        """Async context manager entry"""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.stop()

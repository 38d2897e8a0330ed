"""
Progress tracking: one bounded, closable event channel per in-flight job, plus the owner of each job.

The worker of a job is the only producer on its channel. Readers receive events in the order they
were sent; the channel is a point-to-point queue, so with several readers each event reaches exactly
one of them. Closing a channel lets readers drain what is buffered and then stop, all of them.
"""
import logging
import queue
import threading
from collections import deque
from typing import Deque, Dict, Iterator, Optional

from pitchdeck.core.errors import (
    ChannelClosedError,
    ChannelExistsError,
    ChannelFullError,
    ChannelNotFoundError,
)
from pitchdeck.models.schemas import ProgressUpdate

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10


class ProgressChannel:
    """Bounded FIFO of serialized progress events for one job."""

    def __init__(self, job_id: str, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.job_id = job_id
        self.capacity = capacity
        self._items: Deque[str] = deque()
        self._cond = threading.Condition()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def send(self, payload: str, timeout: Optional[float] = None) -> None:
        """Append one event; waits up to `timeout` for room when the buffer is full."""
        with self._cond:
            if self._closed:
                raise ChannelClosedError(f"progress channel for {self.job_id} is closed")
            has_room = self._cond.wait_for(
                lambda: self._closed or len(self._items) < self.capacity, timeout
            )
            if self._closed:
                raise ChannelClosedError(f"progress channel for {self.job_id} is closed")
            if not has_room:
                raise ChannelFullError(f"progress channel for {self.job_id} is full")
            self._items.append(payload)
            self._cond.notify_all()

    def receive(self, timeout: Optional[float] = None) -> str:
        """Pop the oldest event.

        Raises queue.Empty when nothing arrived within `timeout`, and ChannelClosedError once the
        channel is closed and drained.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._items or self._closed, timeout)
            if self._items:
                item = self._items.popleft()
                self._cond.notify_all()
                return item
            if self._closed:
                raise ChannelClosedError(f"progress channel for {self.job_id} is closed")
            raise queue.Empty

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[str]:
        while True:
            try:
                yield self.receive()
            except ChannelClosedError:
                return


class ProgressTracker:
    """Registry of job id -> progress channel and job id -> owner id.

    Both maps are only touched under one lock, so a job id is in both or in neither. Sending and
    receiving happen on the channel itself, outside the registry lock.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, send_timeout: Optional[float] = 5.0):
        self.capacity = capacity
        self.send_timeout = send_timeout
        self._channels: Dict[str, ProgressChannel] = {}
        self._owners: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create_channel(self, job_id: str, owner_id: str) -> ProgressChannel:
        with self._lock:
            if job_id in self._channels:
                raise ChannelExistsError(f"progress channel already registered for {job_id}")
            channel = ProgressChannel(job_id, self.capacity)
            self._channels[job_id] = channel
            self._owners[job_id] = owner_id
        logger.info("progress channel created job_id=%s owner=%s", job_id, owner_id)
        return channel

    def get_channel(self, job_id: str, user_id: str) -> Optional[ProgressChannel]:
        """Return the channel only to the job's owner. Unknown job and wrong owner both give None."""
        with self._lock:
            channel = self._channels.get(job_id)
            owner = self._owners.get(job_id)
        if channel is None:
            logger.debug("progress channel not found job_id=%s", job_id)
            return None
        if owner != user_id:
            logger.warning("progress channel owner mismatch job_id=%s caller=%s", job_id, user_id)
            return None
        return channel

    def send_update(self, job_id: str, update: ProgressUpdate) -> None:
        with self._lock:
            channel = self._channels.get(job_id)
        if channel is None:
            raise ChannelNotFoundError(f"no progress channel found for ID: {job_id}")
        try:
            channel.send(update.to_json(), timeout=self.send_timeout)
        except ChannelClosedError as e:
            raise ChannelNotFoundError(f"no progress channel found for ID: {job_id}") from e
        logger.debug(
            "progress update job_id=%s status=%s step=%s", job_id, update.status, update.current_step
        )

    def close_channel(self, job_id: str) -> None:
        with self._lock:
            channel = self._channels.pop(job_id, None)
            self._owners.pop(job_id, None)
            if channel is None:
                raise ChannelNotFoundError(f"no progress channel found for ID: {job_id}")
            channel.close()
        logger.info("progress channel closed job_id=%s", job_id)

    def active_jobs(self) -> int:
        with self._lock:
            return len(self._channels)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._channels

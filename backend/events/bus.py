"""Async progress broadcaster for workflow runs.

This module provides the ProgressBroadcaster, a publish/subscribe hub that
turns scheduler state changes into an ordered stream of ProgressEvents for
any number of observers (WebSocket clients, report builders, tests).

The broadcaster supports:
- Multiple queue subscribers and callback listeners per run
- Per-run sequence numbers so consumers can verify ordering
- Failure isolation: a broken subscriber never affects the scheduler or
  other subscribers
- Run lifecycle management (closing a run terminates all subscribers)

There is no buffering or replay: a late subscriber sees only events
published after it subscribed. Consumers that need the current state ask
the run controller for a snapshot first.
"""

import asyncio
import inspect
import threading
from collections import defaultdict
from collections.abc import Awaitable, Callable

import structlog

from config import settings
from events.types import EventType, ProgressEvent

logger = structlog.get_logger()

ProgressListener = Callable[[ProgressEvent], Awaitable[None] | None]


class ProgressBroadcaster:
    """Pub/sub hub for run progress events.

    Queue subscribers receive events through an unbounded asyncio.Queue, so
    delivery never blocks and never drops. Callback listeners are invoked in
    registration order; async listeners are awaited before the next one is
    called, which keeps per-run ordering intact for every observer. An async
    listener that outlives ``listener_timeout`` is cancelled for that event
    and logged, so it cannot stall the scheduler or starve other observers.

    Thread Safety:
        Subscription bookkeeping is guarded by a threading.Lock, so
        subscribe/unsubscribe may be called from any thread. Publishing must
        happen on the event loop that owns the subscriber queues.

    Usage:
        >>> broadcaster = ProgressBroadcaster()
        >>> queue = broadcaster.subscribe("run_123")
        >>> await broadcaster.publish(ProgressEvent.build(
        ...     EventType.RUN_STARTED, "run_123", message="run started"
        ... ))
        >>> event = await queue.get()
        >>> broadcaster.unsubscribe("run_123", queue)
        >>> await broadcaster.close_run("run_123")

    Attributes:
        _subscribers: Dict mapping run_id to subscriber queues
        _listeners: Dict mapping run_id to callback listeners
        _sequences: Dict mapping run_id to the last assigned sequence number
        _lock: Threading lock for subscriber management
        listener_timeout: Seconds one async listener call may take, or None
            for no bound
    """

    def __init__(self, listener_timeout: float | None = 5.0) -> None:
        """Initialize an empty broadcaster."""
        self.listener_timeout = listener_timeout or None
        self._subscribers: dict[str, list[asyncio.Queue[ProgressEvent]]] = defaultdict(list)
        self._listeners: dict[str, list[ProgressListener]] = defaultdict(list)
        self._sequences: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()
        logger.info("progress_broadcaster_initialized")

    def subscribe(self, run_id: str) -> asyncio.Queue[ProgressEvent]:
        """Subscribe to future events for a run.

        Args:
            run_id: The run to subscribe to

        Returns:
            An asyncio.Queue that will receive ProgressEvent objects as they
            are published for this run
        """
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        with self._lock:
            self._subscribers[run_id].append(queue)
            subscriber_count = len(self._subscribers[run_id])

        logger.info(
            "subscriber_added",
            run_id=run_id,
            subscriber_count=subscriber_count,
        )
        return queue

    def unsubscribe(self, run_id: str, queue: asyncio.Queue[ProgressEvent]) -> None:
        """Remove a queue from a run's subscribers. Unknown queues are a no-op.

        Args:
            run_id: The run to unsubscribe from
            queue: The queue to remove
        """
        with self._lock:
            if run_id not in self._subscribers:
                return
            try:
                self._subscribers[run_id].remove(queue)
            except ValueError:
                logger.warning("unsubscribe_queue_not_found", run_id=run_id)
                return
            subscriber_count = len(self._subscribers[run_id])
            if not self._subscribers[run_id]:
                del self._subscribers[run_id]

        logger.info(
            "subscriber_removed",
            run_id=run_id,
            subscriber_count=subscriber_count,
        )

    def add_listener(self, run_id: str, listener: ProgressListener) -> Callable[[], None]:
        """Register a callback invoked for every future event of a run.

        Args:
            run_id: The run to listen to
            listener: Sync or async callable taking a ProgressEvent

        Returns:
            A function that removes the listener when called
        """
        with self._lock:
            self._listeners[run_id].append(listener)

        def _remove() -> None:
            with self._lock:
                listeners = self._listeners.get(run_id)
                if listeners and listener in listeners:
                    listeners.remove(listener)
                    if not listeners:
                        del self._listeners[run_id]

        return _remove

    async def publish(self, event: ProgressEvent) -> ProgressEvent:
        """Stamp an event with its sequence number and deliver it.

        Queue subscribers receive the event first (non-blocking), then
        listeners are invoked in order. Failures are logged and isolated.

        Args:
            event: The ProgressEvent to publish

        Returns:
            The delivered event, carrying its assigned sequence number
        """
        with self._lock:
            self._sequences[event.run_id] += 1
            event = event.model_copy(update={"sequence": self._sequences[event.run_id]})
            subscribers = list(self._subscribers.get(event.run_id, []))
            listeners = list(self._listeners.get(event.run_id, []))

        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except Exception as e:
                logger.warning(
                    "event_delivery_failed",
                    run_id=event.run_id,
                    event_type=event.type.value,
                    error=str(e),
                )

        for listener in listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await asyncio.wait_for(result, timeout=self.listener_timeout)
            except TimeoutError:
                logger.warning(
                    "event_listener_timeout",
                    run_id=event.run_id,
                    event_type=event.type.value,
                    timeout=self.listener_timeout,
                )
            except Exception as e:
                logger.warning(
                    "event_listener_failed",
                    run_id=event.run_id,
                    event_type=event.type.value,
                    error=str(e),
                )

        logger.debug(
            "event_published",
            run_id=event.run_id,
            event_type=event.type.value,
            sequence=event.sequence,
            agent=event.agent_name,
            subscriber_count=len(subscribers),
            listener_count=len(listeners),
        )
        return event

    async def close_run(self, run_id: str) -> None:
        """Close a run's stream and release all its observers.

        Puts a RUN_CLOSED sentinel into each subscriber queue so consumers
        (e.g. the WebSocket send loop) can exit cleanly, then drops all
        subscribers, listeners and the run's sequence counter.

        Args:
            run_id: The run to close
        """
        with self._lock:
            queues_to_signal = self._subscribers.pop(run_id, [])
            listener_count = len(self._listeners.pop(run_id, []))
            last_sequence = self._sequences.pop(run_id, 0)

        sentinel = ProgressEvent.build(
            EventType.RUN_CLOSED,
            run_id,
            message="run closed",
            data={"reason": "run_closed"},
        ).model_copy(update={"sequence": last_sequence + 1})
        for queue in queues_to_signal:
            queue.put_nowait(sentinel)

        if queues_to_signal or listener_count:
            logger.info(
                "run_stream_closed",
                run_id=run_id,
                subscribers_removed=len(queues_to_signal),
                listeners_removed=listener_count,
            )
        else:
            logger.debug("close_run_no_observers", run_id=run_id)

    def get_subscriber_count(self, run_id: str) -> int:
        """Number of queue subscribers for a run."""
        with self._lock:
            return len(self._subscribers.get(run_id, []))

    def get_listener_count(self, run_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(run_id, []))

    def get_active_runs(self) -> list[str]:
        """Run IDs with at least one queue subscriber."""
        with self._lock:
            return list(self._subscribers.keys())


# Global broadcaster instance
_broadcaster: ProgressBroadcaster | None = None
_broadcaster_lock = threading.Lock()


def get_broadcaster() -> ProgressBroadcaster:
    """Get the global ProgressBroadcaster, creating it on first use.

    This function is thread-safe.
    """
    global _broadcaster
    if _broadcaster is None:
        with _broadcaster_lock:
            # Double-check locking pattern
            if _broadcaster is None:
                _broadcaster = ProgressBroadcaster(
                    listener_timeout=settings.listener_timeout_seconds
                )
    return _broadcaster


def reset_broadcaster() -> None:
    """Reset the global broadcaster. Primarily useful in tests."""
    global _broadcaster
    with _broadcaster_lock:
        _broadcaster = None
    logger.info("progress_broadcaster_reset")

"""Progress event stream for workflow runs.

This package turns scheduler state changes into an ordered stream of
events that external collaborators (a WebSocket transport, report builders)
can observe without owning any part of the run.

Key Components:
    - EventType: Enum of all event types in the stream
    - ProgressPhase: Coarse phase (started, progress, completed, failed)
    - ProgressEvent: Immutable Pydantic model for a single event
    - ProgressBroadcaster: Async pub/sub hub delivering events per run

Usage:
    >>> from events import EventType, ProgressEvent, get_broadcaster
    >>>
    >>> broadcaster = get_broadcaster()
    >>> queue = broadcaster.subscribe("run_123")
    >>>
    >>> await broadcaster.publish(ProgressEvent.build(
    ...     EventType.AGENT_STARTED, "run_123", agent_name="product"
    ... ))
    >>>
    >>> event = await queue.get()
    >>> print(event.sequence, event.type.value)

Event Flow:
    1. The Scheduler publishes an event after every state mutation
    2. A WebSocket handler subscribes per run after sending a snapshot
    3. Events are forwarded to the client in sequence order
"""

from events.bus import (
    ProgressBroadcaster,
    ProgressListener,
    get_broadcaster,
    reset_broadcaster,
)
from events.types import (
    EVENT_PHASES,
    EventType,
    ProgressEvent,
    ProgressPhase,
)

__all__ = [
    # Event types
    "EVENT_PHASES",
    "EventType",
    "ProgressEvent",
    "ProgressPhase",
    # Broadcaster
    "ProgressBroadcaster",
    "ProgressListener",
    "get_broadcaster",
    "reset_broadcaster",
]

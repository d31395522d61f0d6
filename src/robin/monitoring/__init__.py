"""Run monitoring: the event bus and its sinks.

Usage::

    from robin.monitoring import EventBus, EventType, LoggingSink

    bus = EventBus()
    bus.add_sink(LoggingSink())
    await bus.emit(EventType.ITERATION_STARTED, {"iteration": 1})
"""

from robin.monitoring.event_bus import (
    Event,
    EventBus,
    EventSink,
    EventType,
    InMemorySink,
    JsonlSink,
    LoggingSink,
)

__all__ = ["Event", "EventBus", "EventSink", "EventType", "InMemorySink", "JsonlSink", "LoggingSink"]

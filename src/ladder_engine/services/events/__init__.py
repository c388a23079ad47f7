from .sink import (
    ActivityEventSink,
    CompositeEventSink,
    EventSink,
    EventType,
    LadderEvent,
    LoggingEventSink,
    RecordingEventSink,
    WebhookEventSink,
    create_event_sink,
)

__all__ = [
    "ActivityEventSink",
    "CompositeEventSink",
    "EventSink",
    "EventType",
    "LadderEvent",
    "LoggingEventSink",
    "RecordingEventSink",
    "WebhookEventSink",
    "create_event_sink",
]

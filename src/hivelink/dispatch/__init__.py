"""Event-Driven Dispatcher"""

from .dispatcher import AgentNotifier, EventDispatcher, GroupChatPoster
from .events import (
    AgentStatusChangedEvent,
    ArtifactUpdatedEvent,
    BlockerResolvedEvent,
    ConflictDetectedEvent,
    DecisionResolvedEvent,
    DispatchEvent,
    DispatchEventName,
    TaskBlockedEvent,
    TaskCompletedEvent,
    parse_dispatch_event,
)

__all__ = [
    "AgentNotifier",
    "EventDispatcher",
    "GroupChatPoster",
    "AgentStatusChangedEvent",
    "ArtifactUpdatedEvent",
    "BlockerResolvedEvent",
    "ConflictDetectedEvent",
    "DecisionResolvedEvent",
    "DispatchEvent",
    "DispatchEventName",
    "TaskBlockedEvent",
    "TaskCompletedEvent",
    "parse_dispatch_event",
]

"""Typed Message Protocol と Context Budget"""

from .context_budget import (
    ClassifiedMessage,
    ContextTier,
    build_agent_context,
    classify_message,
    classify_messages,
)
from .inbox import MessageInbox
from .messages import (
    BROADCAST,
    PAYLOAD_TYPE_MAP,
    MessageHeader,
    MessagePriority,
    MessageType,
    StateRef,
    TypedMessage,
    create_message,
    generate_message_id,
    parse_message,
)

__all__ = [
    # Messages
    "BROADCAST",
    "PAYLOAD_TYPE_MAP",
    "MessageHeader",
    "MessagePriority",
    "MessageType",
    "StateRef",
    "TypedMessage",
    "create_message",
    "generate_message_id",
    "parse_message",
    # Context Budget
    "ClassifiedMessage",
    "ContextTier",
    "build_agent_context",
    "classify_message",
    "classify_messages",
    # Inbox
    "MessageInbox",
]

"""Replay-based conversations for action handlers."""

from .helper import ActionContext, ConversationHelper, FormField, parse_number
from .manager import ConversationManager, ConversationRun
from .session import ChatSession, ChatSessionStore, ConversationRecord

__all__ = [
    "ActionContext",
    "ChatSession",
    "ChatSessionStore",
    "ConversationHelper",
    "ConversationManager",
    "ConversationRecord",
    "ConversationRun",
    "FormField",
    "parse_number",
]

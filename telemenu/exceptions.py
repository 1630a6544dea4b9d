"""Exception hierarchy for telemenu."""

from typing import Optional


class TelemenuError(Exception):
    """Base exception for all telemenu errors."""


class ConfigurationError(TelemenuError):
    """Invalid configuration or menu declaration."""


class CallbackDataTooLongError(ConfigurationError):
    """Encoded callback token does not fit the transport byte budget."""

    def __init__(self, token: str, size: int, limit: int):
        super().__init__(
            f"Callback data is {size} bytes, limit is {limit}: {token!r}. "
            "Use shorter ids or a smaller payload."
        )
        self.token = token
        self.size = size
        self.limit = limit


class DuplicateIdError(ConfigurationError):
    """Two different menus or actions claim the same id."""


class InvalidCallbackDataError(TelemenuError):
    """Callback token could not be decoded."""


class TransportError(TelemenuError):
    """Outbound Telegram call failed."""


class ConversationError(TelemenuError):
    """Conversation state is inconsistent with the handler being replayed."""


class ConversationSignal(BaseException):
    """Internal control-flow signal raised out of action handlers.

    Derives from BaseException so ``except Exception`` blocks in user
    handlers do not intercept it.
    """


class ConversationSuspended(ConversationSignal):
    """Handler reached an ask that has no answer yet."""

    def __init__(self, step: int):
        super().__init__(step)
        self.step = step


class ConversationCancelled(ConversationSignal):
    """User pressed Cancel while an ask was waiting."""


class ConversationNavigated(ConversationSignal):
    """Handler asked to leave the conversation for a menu."""

    def __init__(self, menu_id: Optional[str] = None):
        super().__init__(menu_id)
        self.menu_id = menu_id


class ProbeAborted(ConversationSignal):
    """Probe run of an action reached a point that needs user input."""

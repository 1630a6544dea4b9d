"""Shared fakes for engine tests."""

from typing import Any, Optional

import pytest

from telemenu.app import MenuApp
from telemenu.engine.context import EventKind, InboundEvent
from telemenu.engine.transport import EditResult, KeyboardButton
from telemenu.exceptions import TransportError
from telemenu.storage.session_storage import MemorySessionStorage


class FakeTransport:
    """In-memory chat that records every outbound call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.messages: dict[int, dict[str, Any]] = {}
        self.answers: list[tuple[str, Optional[str], bool]] = []
        self.deleted: list[int] = []
        self.fail_edits: Optional[Exception] = None
        self._next_id = 100

    def _store(self, chat_id: int, kind: str, text: Optional[str], keyboard: Any) -> int:
        self._next_id += 1
        self.messages[self._next_id] = {
            "chat_id": chat_id,
            "kind": kind,
            "text": text,
            "keyboard": [list(row) for row in (keyboard or [])],
        }
        return self._next_id

    async def send_message(self, chat_id, text, *, keyboard=None, parse_mode=None):
        message_id = self._store(chat_id, "text", text, keyboard)
        self.calls.append(("send_message", {"chat_id": chat_id, "message_id": message_id}))
        return message_id

    async def send_photo(
        self, chat_id, photo, *, caption=None, keyboard=None, parse_mode=None
    ):
        message_id = self._store(chat_id, "image", caption, keyboard)
        self.messages[message_id]["photo"] = photo
        self.calls.append(("send_photo", {"chat_id": chat_id, "message_id": message_id}))
        return message_id

    async def edit_message_text(
        self, chat_id, message_id, text, *, keyboard=None, parse_mode=None
    ):
        self.calls.append(("edit_message_text", {"message_id": message_id}))
        if self.fail_edits is not None:
            raise self.fail_edits
        message = self.messages.get(message_id)
        if message is None:
            raise TransportError("message to edit not found")
        new_keyboard = [list(row) for row in (keyboard or [])]
        if message["text"] == text and message["keyboard"] == new_keyboard:
            return EditResult.NOT_MODIFIED
        message.update(text=text, keyboard=new_keyboard)
        return EditResult.OK

    async def edit_message_media(
        self, chat_id, message_id, photo, *, caption=None, keyboard=None, parse_mode=None
    ):
        self.calls.append(("edit_message_media", {"message_id": message_id}))
        if self.fail_edits is not None:
            raise self.fail_edits
        message = self.messages.get(message_id)
        if message is None:
            raise TransportError("message to edit not found")
        message.update(
            photo=photo, text=caption, keyboard=[list(row) for row in (keyboard or [])]
        )
        return EditResult.OK

    async def delete_message(self, chat_id, message_id):
        self.calls.append(("delete_message", {"message_id": message_id}))
        if self.messages.pop(message_id, None) is None:
            raise TransportError("message to delete not found")
        self.deleted.append(message_id)

    async def answer_callback(self, callback_query_id, text=None, *, show_alert=False):
        self.answers.append((callback_query_id, text, show_alert))

    # Inspection helpers

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def last_message_id(self) -> int:
        return max(self.messages)

    def text(self, message_id: Optional[int] = None) -> Optional[str]:
        return self.messages[message_id or self.last_message_id()]["text"]

    def keyboard(self, message_id: Optional[int] = None) -> list[list[KeyboardButton]]:
        return self.messages[message_id or self.last_message_id()]["keyboard"]

    def labels(self, message_id: Optional[int] = None) -> list[list[str]]:
        return [[b.text for b in row] for row in self.keyboard(message_id)]

    def button(self, label: str, message_id: Optional[int] = None) -> KeyboardButton:
        for row in self.keyboard(message_id):
            for button in row:
                if button.text == label:
                    return button
        raise AssertionError(f"No button {label!r} in {self.labels(message_id)}")


class EventFactory:
    """Build inbound events for one private chat."""

    def __init__(self, chat_id: int = 42) -> None:
        self.chat_id = chat_id
        self._message_id = 1000
        self._query_id = 0

    def _next_message_id(self) -> int:
        self._message_id += 1
        return self._message_id

    def command(self, name: str, *args: str) -> InboundEvent:
        return InboundEvent(
            chat_id=self.chat_id,
            kind=EventKind.COMMAND,
            text=" ".join(["/" + name, *args]),
            command=name,
            args=list(args),
            message_id=self._next_message_id(),
        )

    def text(self, text: str, *, is_private: bool = True) -> InboundEvent:
        return InboundEvent(
            chat_id=self.chat_id,
            kind=EventKind.TEXT,
            text=text,
            message_id=self._next_message_id(),
            is_private=is_private,
        )

    def photo(self, file_id: str = "photo-large") -> InboundEvent:
        return InboundEvent(
            chat_id=self.chat_id,
            kind=EventKind.PHOTO,
            message_id=self._next_message_id(),
            photo_file_id=file_id,
        )

    def press(
        self,
        transport: FakeTransport,
        label: str,
        message_id: Optional[int] = None,
    ) -> InboundEvent:
        """Press a button of a message currently shown by the fake transport."""
        message_id = message_id or transport.last_message_id()
        button = transport.button(label, message_id)
        return self.callback(
            button.callback_data,
            message_id=message_id,
            is_photo=transport.messages[message_id]["kind"] == "image",
        )

    def callback(
        self, data: Optional[str], *, message_id: int = 1, is_photo: bool = False
    ) -> InboundEvent:
        self._query_id += 1
        return InboundEvent(
            chat_id=self.chat_id,
            kind=EventKind.CALLBACK,
            callback_data=data,
            callback_query_id=f"q{self._query_id}",
            message_id=message_id,
            message_is_photo=is_photo,
        )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def events() -> EventFactory:
    return EventFactory()


@pytest.fixture
def storage() -> MemorySessionStorage:
    return MemorySessionStorage()


@pytest.fixture
def build_dispatcher(transport, storage):
    """Return ``async (root, catalog=None, **kwargs) -> Dispatcher``."""

    async def build(root, catalog=None, **kwargs):
        kwargs.setdefault("storage", storage)
        app = MenuApp(root, catalog=catalog, **kwargs)
        return await app.build(transport)

    return build

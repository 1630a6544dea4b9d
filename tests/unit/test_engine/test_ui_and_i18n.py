"""Tests for callback feedback, translation and page state."""

import pytest

from telemenu.engine.context import MenuContext
from telemenu.engine.pagination import PageStateStore
from telemenu.engine.ui import UIHelper, answer_callback_once
from telemenu.exceptions import TransportError
from telemenu.i18n import BACK, DefaultTranslator


@pytest.mark.asyncio
async def test_toast_answers_the_query_once(transport, events):
    """Only the first notice reaches Telegram."""
    ctx = MenuContext(chat_id=42, event=events.callback("_:root"))
    ui = UIHelper(ctx, transport)

    await ui.alert("Careful")
    await ui.toast("ignored")
    assert await answer_callback_once(ctx, transport) is False

    assert transport.answers == [("q1", "Careful", True)]


@pytest.mark.asyncio
async def test_toast_outside_callbacks_does_nothing(transport, events):
    """Messages have no query to answer."""
    ctx = MenuContext(chat_id=42, event=events.text("hi"))

    await UIHelper(ctx, transport).toast("hello")

    assert transport.answers == []


@pytest.mark.asyncio
async def test_failed_answer_is_not_raised(transport, events):
    """Expired queries only log."""

    async def expired(*args, **kwargs):
        raise TransportError("query is too old")

    transport.answer_callback = expired
    ctx = MenuContext(chat_id=42, event=events.callback("_:root"))

    assert await answer_callback_once(ctx, transport, "late") is False


def test_default_translator_overrides_and_formatting():
    """Known keys map to strings; unknown keys pass through formatted."""
    translator = DefaultTranslator({BACK: "Zurück"})

    assert translator.translate(BACK, None) == "Zurück"
    assert translator.translate("Hi {name}", None, {"name": "Ann"}) == "Hi Ann"
    assert translator.translate("Hi {name}", None, {"other": 1}) == "Hi {name}"
    assert translator.translate("{literal}", None) == "{literal}"


def test_page_store_is_scoped_per_chat_menu_and_list():
    """Page 0 is the default; clearing a chat leaves other chats intact."""
    store = PageStateStore()
    store.set(1, "stars", 0, 2)
    store.set(1, "stars", 1, 3)
    store.set(2, "stars", 0, 1)

    assert store.get(1, "stars", 0) == 2
    assert store.get(1, "other", 0) == 0

    store.set(1, "stars", 1, 0)
    store.clear_chat(1)
    assert len(store) == 1
    assert store.get(2, "stars", 0) == 1

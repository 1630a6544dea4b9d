"""Tests for replayed action conversations."""

from datetime import date

import pytest

from telemenu.conversation import ChatSession, ConversationRecord, FormField
from telemenu.storage import JsonFileSessionStorage
from telemenu.menu import Button, Catalog, action, menu

ROOT_TEXT = "Shop"


def make_root(*actions, items=None, item_action=None):
    @menu(id="root")
    def root(layout, ctx):
        layout.text(ROOT_TEXT)
        for ref in actions:
            layout.button(ref.id.title()).action(ref)
        if items:
            layout.list(items, item_action).render(lambda name: Button(name).id(name))

    return root


@action(id="buy")
async def buy(act):
    qty = await act.conversation.ask("How many?", type="number")
    act.layout.text("Bought {qty}").replace(qty=qty)


async def start_buy(build_dispatcher, transport, events, root=None):
    dispatcher = await build_dispatcher(root or make_root(buy))
    await dispatcher.dispatch(events.command("start"))
    await dispatcher.dispatch(events.press(transport, "Buy"))
    return dispatcher


@pytest.mark.asyncio
async def test_number_ask_reprompts_then_completes_in_prompt(
    build_dispatcher, transport, events, storage
):
    """Invalid numbers re-ask in the same message; a valid one finishes."""
    dispatcher = await start_buy(build_dispatcher, transport, events)
    prompt_id = transport.last_message_id()
    assert transport.text(prompt_id) == "How many?"
    assert transport.labels(prompt_id) == [["🚫 Cancel"]]
    assert len(storage) == 1

    await dispatcher.dispatch(events.text("abc"))
    assert transport.text(prompt_id) == "Please send a valid number.\n\nHow many?"
    assert "delete_message" in transport.call_names()

    await dispatcher.dispatch(events.text("5"))
    assert transport.text(prompt_id) == "Bought 5"
    assert transport.last_message_id() == prompt_id
    assert len(storage) == 0


@pytest.mark.asyncio
async def test_cancel_shows_origin_menu_in_prompt(
    build_dispatcher, transport, events, storage
):
    """Cancel ends the conversation and restores the menu it started from."""
    dispatcher = await start_buy(build_dispatcher, transport, events)
    prompt_id = transport.last_message_id()

    await dispatcher.dispatch(events.press(transport, "🚫 Cancel"))

    assert transport.text(prompt_id) == ROOT_TEXT
    assert len(storage) == 0


@pytest.mark.asyncio
async def test_menu_button_during_ask_is_refused(
    build_dispatcher, transport, events, storage
):
    """Pressing an old menu button while waiting answers with a notice."""
    dispatcher = await start_buy(build_dispatcher, transport, events)
    prompt_id = transport.last_message_id()

    await dispatcher.dispatch(events.callback("n:root", message_id=prompt_id))

    assert transport.answers[-1][1] == "Please finish or cancel the current step first."
    assert transport.text(prompt_id) == "How many?"
    blob = await storage.load("chat:42")
    assert blob["active_action_id"] == "buy"


@pytest.mark.asyncio
async def test_conversation_resumes_after_restart(
    build_dispatcher, transport, events
):
    """A fresh engine over the same storage continues the waiting ask."""
    await start_buy(build_dispatcher, transport, events)
    prompt_id = transport.last_message_id()

    restarted = await build_dispatcher(make_root(buy))
    await restarted.dispatch(events.text("7"))

    assert transport.text(prompt_id) == "Bought 7"


@pytest.mark.asyncio
async def test_conversation_resumes_from_session_files_after_each_restart(
    build_dispatcher, transport, events, tmp_path
):
    """Every answer may reach a fresh engine reading the JSON session files."""
    reservations = []
    seats = []

    def reserve():
        reservations.append("seat")
        return ("A", len(reservations))

    def rows(keyboard):
        keyboard.button("1")
        keyboard.button("2")

    @action(id="book")
    async def book(act):
        seat = await act.conversation.external(reserve)
        seats.append(seat)
        count = await act.conversation.ask("Tickets?", type="number")
        row = await act.conversation.ask("Row?", rows)
        act.layout.text("{count} tickets, row {row}, seat {seat}").replace(
            count=count, row=row, seat=f"{seat[0]}{seat[1]}"
        )

    storage = JsonFileSessionStorage(tmp_path)

    async def restart():
        return await build_dispatcher(make_root(book), storage=storage)

    dispatcher = await restart()
    await dispatcher.dispatch(events.command("start"))
    await dispatcher.dispatch(events.press(transport, "Book"))
    prompt_id = transport.last_message_id()
    assert transport.text(prompt_id) == "Tickets?"

    dispatcher = await restart()
    await dispatcher.dispatch(events.text("3"))
    assert transport.text(prompt_id) == "Row?"
    assert transport.button("2", prompt_id).callback_data == "k:book:2"

    dispatcher = await restart()
    await dispatcher.dispatch(events.press(transport, "2", prompt_id))

    assert transport.text(prompt_id) == "3 tickets, row 2, seat A1"
    assert reservations == ["seat"]
    assert seats == [["A", 1]] * 3
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_unstorable_step_value_ends_conversation_once(
    build_dispatcher, transport, events, storage
):
    """A step result that is not JSON fails the run instead of the save."""
    charges = []

    @action(id="charge")
    async def charge(act):
        name = await act.conversation.ask("Name?")
        await act.conversation.external(
            lambda: charges.append(name) or date(2024, 1, 1)
        )
        await act.conversation.ask("Confirm?")

    dispatcher = await build_dispatcher(make_root(charge))
    await dispatcher.dispatch(events.command("start"))
    await dispatcher.dispatch(events.press(transport, "Charge"))

    await dispatcher.dispatch(events.text("bob"))
    assert charges == ["bob"]
    assert transport.text() == ROOT_TEXT
    assert len(storage) == 0

    await dispatcher.dispatch(events.text("bob"))
    assert charges == ["bob"]


@pytest.mark.asyncio
async def test_payload_is_frozen_for_the_whole_conversation(
    build_dispatcher, transport, events, storage
):
    """The list item id stays available across replays."""

    @action(id="note")
    async def note(act):
        star = act.id
        text = await act.conversation.ask("Note for {star}?", variables={"star": star})
        act.layout.text("{star}: {text}").replace(star=star, text=text)

    dispatcher = await build_dispatcher(
        make_root(items=["Vega", "Sirius"], item_action=note)
    )
    await dispatcher.dispatch(events.command("start"))
    assert transport.button("Vega").callback_data == "a:note/root:Vega"

    await dispatcher.dispatch(events.press(transport, "Vega"))
    assert transport.text() == "Note for Vega?"
    blob = await storage.load("chat:42")
    assert blob["conversations"]["note"]["payload"] == {"id": "Vega"}

    await dispatcher.dispatch(events.text("bright"))
    assert transport.text() == "Vega: bright"


@pytest.mark.asyncio
async def test_choice_ask_accepts_only_its_buttons(build_dispatcher, transport, events):
    """Typed text is refused; a pressed choice returns its id."""

    @action(id="ship")
    async def ship(act):
        def options(keyboard):
            keyboard.button("Express").id("express")
            keyboard.button("Standard")

        method = await act.conversation.ask("Shipping?", options)
        await act.ui.toast(f"Chose {method}")
        act.layout.text("Shipping: {method}").replace(method=method)

    dispatcher = await build_dispatcher(make_root(ship))
    await dispatcher.dispatch(events.command("start"))
    await dispatcher.dispatch(events.press(transport, "Ship"))
    prompt_id = transport.last_message_id()
    assert transport.labels(prompt_id) == [["Express", "Standard"], ["🚫 Cancel"]]
    assert transport.button("Express").callback_data == "k:ship:express"

    await dispatcher.dispatch(events.text("fast please"))
    assert transport.text(prompt_id) == "Please use the buttons above.\n\nShipping?"

    await dispatcher.dispatch(events.press(transport, "Express", prompt_id))
    assert transport.text(prompt_id) == "Shipping: express"
    assert transport.answers[-1][1] == "Chose express"


@pytest.mark.asyncio
async def test_form_collects_text_and_photo(build_dispatcher, transport, events):
    """Forms ask each field in order; photo fields take the largest size."""
    catalog = Catalog()

    @catalog.action(id="register", words=["register"])
    async def register(act):
        data = await act.conversation.form(
            [
                {"name": "name", "question": "Name?"},
                FormField("avatar", "Photo?", type="photo"),
            ]
        )
        act.layout.text("{name} / {avatar}").replace(**data)

    dispatcher = await build_dispatcher(make_root(), catalog)

    await dispatcher.dispatch(events.text("register"))
    prompt_id = transport.last_message_id()
    assert transport.text(prompt_id) == "Name?"

    await dispatcher.dispatch(events.text("Ann"))
    assert transport.text(prompt_id) == "Photo?"

    await dispatcher.dispatch(events.text("no photo"))
    assert transport.text(prompt_id) == "Please send a photo.\n\nPhoto?"

    await dispatcher.dispatch(events.photo("file-123"))
    assert transport.text(prompt_id) == "Ann / file-123"


@pytest.mark.asyncio
async def test_side_effects_run_once_across_replays(
    build_dispatcher, transport, events, storage
):
    """external and say are recorded and not repeated when replayed."""
    calls = []

    def allocate():
        calls.append("allocate")
        return len(calls)

    @action(id="survey")
    async def survey(act):
        number = await act.conversation.external(allocate)
        await act.conversation.say("Survey #{n}", variables={"n": number})
        colour = await act.conversation.ask("Favourite colour?")
        act.layout.text("#{n}: {colour}").replace(n=number, colour=colour)

    dispatcher = await build_dispatcher(make_root(survey))
    await dispatcher.dispatch(events.command("start"))
    await dispatcher.dispatch(events.press(transport, "Survey"))
    blob = await storage.load("chat:42")
    assert [step["kind"] for step in blob["conversations"]["survey"]["log"]] == [
        "external",
        "say",
    ]

    await dispatcher.dispatch(events.text("blue"))

    assert calls == ["allocate"]
    assert transport.text() == "#1: blue"


@pytest.mark.asyncio
async def test_async_validator_and_custom_error(build_dispatcher, transport, events):
    """Rejected values show the custom error above the question."""

    async def is_even(value):
        return value % 2 == 0

    @action(id="even")
    async def even(act):
        value = await act.conversation.ask(
            "Even number?", type="number", validate=is_even, error_message="Odd."
        )
        act.layout.text("Got {value}").replace(value=value)

    dispatcher = await build_dispatcher(make_root(even))
    await dispatcher.dispatch(events.command("start"))
    await dispatcher.dispatch(events.press(transport, "Even"))

    await dispatcher.dispatch(events.text("3"))
    assert transport.text() == "Odd.\n\nEven number?"

    await dispatcher.dispatch(events.text("4"))
    assert transport.text() == "Got 4"


@pytest.mark.asyncio
async def test_navigate_ends_conversation_with_menu(
    build_dispatcher, transport, events, storage
):
    """navigate() shows the given menu in the prompt message."""
    done = menu(lambda layout, ctx: layout.text("All done"), id="done")

    @action(id="finish")
    async def finish(act):
        await act.conversation.say("Working...")
        await act.navigate(done)

    dispatcher = await build_dispatcher(make_root(finish))
    await dispatcher.dispatch(events.command("start"))
    prompt_id = transport.last_message_id()

    await dispatcher.dispatch(events.press(transport, "Finish"))

    assert transport.text(prompt_id) == "All done"
    assert transport.labels(prompt_id) == []
    assert len(storage) == 0


def order_root():
    @action(id="order")
    async def order(act):
        async def receipt(sub):
            await sub.reply(f"Receipt for {sub.id}")
            await sub.navigate()

        act.layout.text("Ordered")
        act.layout.button("Receipt").id("receipt").action(receipt)

    @menu(id="root")
    def root(layout, ctx):
        layout.text(ROOT_TEXT)
        layout.button("Order").id("o9").action(order)

    return root


@pytest.mark.asyncio
async def test_inline_button_in_action_layout_starts_sub_action(
    build_dispatcher, transport, events
):
    """Coroutine buttons of an action layout run with the inherited payload."""
    dispatcher = await build_dispatcher(order_root())
    await dispatcher.dispatch(events.command("start"))
    prompt_id = transport.last_message_id()

    await dispatcher.dispatch(events.press(transport, "Order"))
    assert transport.text(prompt_id) == "Ordered"
    assert transport.button("Receipt", prompt_id).callback_data == (
        "i:order_receipt/order:o9"
    )

    await dispatcher.dispatch(events.press(transport, "Receipt", prompt_id))

    assert transport.text() == "Receipt for o9"
    assert transport.text(prompt_id) == ROOT_TEXT


@pytest.mark.asyncio
async def test_inline_token_after_restart_is_found_by_probing_parent(
    build_dispatcher, transport, events
):
    """A fresh engine re-runs the parent action to locate the inline handler."""
    dispatcher = await build_dispatcher(order_root())
    await dispatcher.dispatch(events.command("start"))
    prompt_id = transport.last_message_id()
    transport.calls.clear()

    await dispatcher.dispatch(
        events.callback("i:order_receipt/order:o9", message_id=prompt_id)
    )

    assert transport.text() == "Receipt for o9"
    assert transport.answers[-1][1] is None


@pytest.mark.asyncio
async def test_inline_token_behind_an_ask_is_stale_after_restart(
    build_dispatcher, transport, events
):
    """Probing stops at the parent's first ask, so the button is expired."""

    @action(id="quiz")
    async def quiz(act):
        await act.conversation.ask("Ready?")

        async def again(sub):
            sub.layout.text("Again")

        act.layout.button("Again").id("again").action(again)

    dispatcher = await build_dispatcher(make_root(quiz))
    await dispatcher.dispatch(events.command("start"))
    prompt_id = transport.last_message_id()

    await dispatcher.dispatch(events.callback("i:quiz_again/quiz", message_id=prompt_id))

    assert transport.answers[-1][1] == "This button has expired."
    assert transport.text(prompt_id) == ROOT_TEXT


@pytest.mark.asyncio
async def test_replay_divergence_ends_conversation_with_root(
    build_dispatcher, transport, events, storage
):
    """A handler that changes its step order is stopped and the root shown."""
    runs = []

    @action(id="fickle")
    async def fickle(act):
        runs.append(1)
        if len(runs) == 1:
            await act.conversation.say("Hello")
        await act.conversation.ask("Name?")

    dispatcher = await build_dispatcher(make_root(fickle))
    await dispatcher.dispatch(events.command("start"))
    await dispatcher.dispatch(events.press(transport, "Fickle"))
    assert transport.text() == "Name?"

    await dispatcher.dispatch(events.text("Ann"))

    assert transport.text() == ROOT_TEXT
    assert len(storage) == 0


@pytest.mark.asyncio
async def test_resolved_payload_ignores_later_tokens(build_dispatcher, events):
    """A different token seen on replay never replaces the frozen payload."""
    dispatcher = await build_dispatcher(make_root(buy))
    manager = dispatcher.manager
    node = dispatcher.registry.actions["buy"]
    session = ChatSession()
    record = ConversationRecord(action_id="buy")

    manager.resolve_payload(
        record, session, node, events.callback("a:buy/root:1", message_id=101)
    )
    manager.resolve_payload(
        record, session, node, events.callback("a:buy/root:2", message_id=101)
    )
    session.stage_payload({"id": 3})
    manager.resolve_payload(record, session, node, None)

    assert record.payload == {"id": 1}

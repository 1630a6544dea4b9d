"""Tests for menu/action discovery and the trigger index."""

import pytest

from telemenu.engine.registry import Registry
from telemenu.exceptions import DuplicateIdError
from telemenu.menu import Button, Catalog, action, menu


def build_tree():
    @action(id="buy")
    async def buy(act):
        pass

    @action(id="sell")
    async def sell(act):
        pass

    @menu(id="b")
    def b(layout, ctx):
        layout.button("Back home").menu(root)

    @menu(id="a")
    def a(layout, ctx):
        layout.button("B").menu(b)
        layout.list(["x", "y"], sell)

    async def inline_job(act):
        pass

    @menu(id="root")
    def root(layout, ctx):
        layout.button("A").menu(a)
        layout.button("Buy").action(buy)
        layout.button("Job").id("job").action(inline_job)
        layout.button("Tab").action(lambda: None)

    return root


@pytest.mark.asyncio
async def test_discover_walks_menus_depth_first_with_first_parent():
    """Every reachable menu gets the parent it was first reached from."""
    registry = await Registry.discover(build_tree())

    assert set(registry.menus) == {"root", "a", "b"}
    assert registry.parent_of("root") is None
    assert registry.parent_of("a") == "root"
    assert registry.parent_of("b") == "a"


@pytest.mark.asyncio
async def test_discover_registers_actions_inline_handlers_and_list_probe():
    """Action refs, coroutine inline handlers and list actions are indexed."""
    registry = await Registry.discover(build_tree())

    assert {"buy", "sell", "root_job"} <= set(registry.actions)
    inline = registry.actions["root_job"]
    assert inline.inline is True
    assert inline.origin_id == "root"
    # Plain functions are tab handlers, not actions.
    assert "root_3" not in registry.actions


@pytest.mark.asyncio
async def test_builder_failure_keeps_menu_registered():
    """A builder that raises during discovery is still known by id."""

    @menu(id="broken")
    def broken(layout, ctx):
        raise RuntimeError("needs a real user")

    @menu(id="root")
    def root(layout, ctx):
        layout.button("Broken").menu(broken)

    registry = await Registry.discover(root)

    assert "broken" in registry.menus
    assert registry.parent_of("broken") == "root"


@pytest.mark.asyncio
async def test_catalog_orphans_are_registered_without_parent():
    """Unreachable catalog entries still get registered for their triggers."""
    catalog = Catalog()

    @catalog.menu(id="help", commands=["/Help"])
    def help_menu(layout, ctx):
        layout.text("help")

    @catalog.action(id="ping", words=["ping"])
    async def ping(act):
        pass

    @menu(id="root")
    def root(layout, ctx):
        layout.text("root")

    registry = await Registry.discover(root, catalog)

    assert registry.parent_of("help") is None
    assert "ping" in registry.actions
    assert [(node.id, cmd) for node, cmd in registry.command_targets()] == [
        ("help", "help")
    ]
    assert [(node.id, word) for node, word in registry.word_targets()] == [
        ("ping", "ping")
    ]


@pytest.mark.asyncio
async def test_trigger_index_lists_actions_before_menus():
    """An action and a menu sharing a command resolve to the action first."""
    catalog = Catalog()
    catalog.menu(lambda layout, ctx: None, id="shop", commands=["shop"])
    catalog.action(lambda act: None, id="shop_now", commands=["shop"])

    @menu(id="root")
    def root(layout, ctx):
        pass

    registry = await Registry.discover(root, catalog)

    targets = [node.id for node, _ in registry.command_targets()]
    assert targets == ["shop_now", "shop"]
    assert registry.bot_commands() == ["shop"]


@pytest.mark.asyncio
async def test_duplicate_ids_warn_by_default_and_raise_when_strict():
    """Two different builders with one id keep the first unless strict."""
    first = menu(lambda layout, ctx: layout.text("one"), id="dup")
    second = menu(lambda layout, ctx: layout.text("two"), id="dup")

    @menu(id="root")
    def root(layout, ctx):
        layout.button("1").menu(first)
        layout.button("2").menu(second)

    registry = await Registry.discover(root)
    assert registry.menus["dup"].ref is first

    with pytest.raises(DuplicateIdError):
        await Registry.discover(root, strict_ids=True)


@pytest.mark.asyncio
async def test_closures_from_one_definition_are_not_duplicates():
    """Menus re-declared inside a builder share the code location id."""

    @menu(id="root")
    def root(layout, ctx):
        detail = menu(lambda layout, ctx: layout.text("detail"))
        layout.button("Detail").menu(detail)

    registry = await Registry.discover(root, strict_ids=True)
    layout_ids = [node_id for node_id in registry.menus if node_id != "root"]

    assert len(layout_ids) == 1
    assert layout_ids[0].startswith("m")


def test_auto_ids_are_stable_and_valid():
    """Ids derived from code location are deterministic and token safe."""

    def builder(layout, ctx):
        pass

    assert menu(builder).id == menu(builder).id
    assert ":" not in menu(builder).id
    assert action(lambda act: None).id.startswith("a")


def test_button_resolved_key_prefers_explicit_id():
    """Explicit ids beat positional indexes."""
    assert Button("x").resolved_key(3) == "3"
    assert Button("x").id("sku").resolved_key(3) == "sku"

"""Demo menus served by ``telemenu --demo``."""

from datetime import datetime, timezone

from .conversation.helper import ActionContext
from .engine.context import MenuContext
from .menu import Button, Catalog, Layout

catalog = Catalog()

STARS = [
    "Sirius",
    "Canopus",
    "Arcturus",
    "Vega",
    "Capella",
    "Rigel",
    "Procyon",
    "Achernar",
    "Betelgeuse",
    "Hadar",
    "Altair",
    "Acrux",
    "Aldebaran",
    "Antares",
    "Spica",
]


@catalog.action(id="buy")
async def buy_star(act: ActionContext) -> None:
    star = act.id or "a star"
    amount = await act.conversation.ask(
        "How many {star} souvenirs?",
        type="number",
        validate=lambda value: 0 < value <= 100,
        error_message="Pick a number between 1 and 100.",
        variables={"star": star},
    )

    def delivery_options(kb):
        kb.max_per_row(2)
        kb.button("🚀 Express").id("express")
        kb.button("🐢 Standard").id("standard")

    delivery = await act.conversation.ask("Delivery speed?", delivery_options)
    await act.ui.toast("Order placed")

    act.layout.text("Ordered {amount} × {star} ({delivery}).").replace(
        amount=amount, star=star, delivery=delivery
    )
    act.layout.button("🧾 Receipt").action(send_receipt)
    act.layout.button("🏠 Home").menu(root)


async def send_receipt(act: ActionContext) -> None:
    await act.reply("Receipt #{0}".format(act.id or "-"))
    await act.navigate(root)


@catalog.menu(id="stars", commands=["stars"])
def stars_menu(layout: Layout, ctx: MenuContext) -> None:
    layout.text("⭐ Brightest stars, pick one")
    layout.list(STARS, buy_star).per_page(5).columns(2).render(
        lambda name: Button(name).id(name)
    )


@catalog.menu(id="info")
def info_menu(layout: Layout, ctx: MenuContext) -> None:
    text = layout.text("About telemenu")

    def about() -> None:
        text.content = "Menus, tabs and resumable conversations for Telegram."

    def usage() -> None:
        text.content = "Press buttons. Send /stars to jump to the star list."

    layout.max_per_row(2)
    layout.button("ℹ️ About").id("about").action(about).default()
    layout.button("📖 Usage").id("usage").action(usage)
    layout.button("🌐 Website").url("https://core.telegram.org/bots").row()


@catalog.action(id="register", words=["register"])
async def register(act: ActionContext) -> None:
    answers = await act.conversation.form(
        [
            {"name": "name", "question": "What is your name?"},
            {
                "name": "age",
                "question": "How old are you?",
                "type": "number",
                "validate": lambda value: 0 < value < 150,
            },
            {"name": "avatar", "question": "Send a profile photo.", "type": "photo"},
        ]
    )
    registered_at = await act.conversation.external(
        lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )
    await act.conversation.say("Thanks, {name}!", variables=answers)
    act.layout.text("Registered {name} ({age}) at {at}.").replace(
        name=answers["name"], age=answers["age"], at=registered_at
    )
    act.layout.button("🏠 Home").menu(root)


@catalog.action(id="greet", regexps=[r"^hello (\w+)$"])
async def greet(act: ActionContext) -> None:
    act.layout.text("Hello, {who}!").replace(who=act.id or "stranger")


@catalog.menu(id="time")
def time_menu(layout: Layout, ctx: MenuContext) -> None:
    now = datetime.now(timezone.utc).strftime("%H:%M:%S")
    layout.text("🕒 UTC time: {now}").replace(now=now)
    layout.refresh_button()


@catalog.menu(id="home", commands=["menu"])
def root(layout: Layout, ctx: MenuContext) -> None:
    name = ctx.sender.get("first_name") or "there"
    layout.text("Hi {name}! Choose a section.").replace(name=name)
    layout.max_per_row(2)
    layout.button("⭐ Stars").menu(stars_menu)
    layout.button("ℹ️ Info").menu(info_menu)
    layout.button("📝 Register").action(register)
    layout.button("🕒 Time").menu(time_menu)
    layout.button(lambda c: "👤 " + str(c.user.get("role", "guest"))).row()

"""telemenu.

Button-menu engine for Telegram bots: declare menus and actions as Python
functions, and telemenu turns them into inline keyboards with back
navigation, pagination, tabs and multi-step conversations that survive
process restarts.

Features:
- Declarative layouts (text, images, buttons, paginated lists, tabs)
- Compact callback tokens within Telegram's 64 byte limit
- Replay-based conversations (ask, form, say) with persisted state
- python-telegram-bot integration with polling or webhook mode
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .app import MenuApp
from .conversation.helper import ActionContext, FormField
from .engine.context import MenuContext
from .menu import Button, Catalog, Layout, action, menu

__all__ = [
    "ActionContext",
    "Button",
    "Catalog",
    "FormField",
    "Layout",
    "MenuApp",
    "MenuContext",
    "__version__",
    "action",
    "menu",
]

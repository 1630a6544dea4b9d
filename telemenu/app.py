"""Assemble the menu engine from declarations and settings."""

from __future__ import annotations

from typing import Optional

import structlog

from .config.settings import (
    DEFAULT_CALLBACK_DATA_LIMIT,
    DEFAULT_COLUMNS,
    DEFAULT_ITEMS_PER_PAGE,
    Settings,
)
from .conversation.manager import ConversationManager
from .conversation.session import ChatSessionStore
from .engine.dispatcher import Dispatcher, UserResolver
from .engine.pagination import PageStateStore
from .engine.presenter import MessagePresenter
from .engine.protocol import CallbackCodec
from .engine.registry import Registry
from .engine.render import Renderer
from .engine.transport import Transport
from .exceptions import ConfigurationError
from .i18n import DefaultTranslator, Translator
from .menu.refs import Catalog, MenuRef
from .storage.session_storage import (
    JsonFileSessionStorage,
    MemorySessionStorage,
    SessionStorage,
)

logger = structlog.get_logger()


class MenuApp:
    """A root menu plus everything needed to serve it.

    ``build()`` discovers the menu graph and wires the engine to a
    transport. Without ``settings`` the engine uses the default limits and
    in-memory session storage.
    """

    def __init__(
        self,
        root: MenuRef,
        *,
        catalog: Optional[Catalog] = None,
        settings: Optional[Settings] = None,
        storage: Optional[SessionStorage] = None,
        translator: Optional[Translator] = None,
        resolve_user: Optional[UserResolver] = None,
    ) -> None:
        if not isinstance(root, MenuRef):
            raise ConfigurationError(
                f"Root must be a MenuRef, got {type(root).__name__}"
            )
        self.root = root
        self.catalog = catalog
        self.settings = settings
        self.storage = storage if storage is not None else self._default_storage()
        self.translator: Translator = translator or DefaultTranslator()
        self.resolve_user = resolve_user
        self.registry: Optional[Registry] = None
        self.dispatcher: Optional[Dispatcher] = None

    def _default_storage(self) -> SessionStorage:
        if self.settings is not None and self.settings.session_storage_dir:
            return JsonFileSessionStorage(self.settings.session_storage_dir)
        return MemorySessionStorage()

    async def build(self, transport: Transport) -> Dispatcher:
        """Discover menus and create the dispatcher for ``transport``."""
        settings = self.settings
        if settings is not None:
            callback_limit = settings.callback_data_limit
            items_per_page = settings.default_items_per_page
            columns = settings.default_columns
            strict_ids = bool(settings.strict_ids)
        else:
            callback_limit = DEFAULT_CALLBACK_DATA_LIMIT
            items_per_page = DEFAULT_ITEMS_PER_PAGE
            columns = DEFAULT_COLUMNS
            strict_ids = False

        registry = await Registry.discover(
            self.root, self.catalog, strict_ids=strict_ids
        )
        codec = CallbackCodec(callback_limit)
        page_store = PageStateStore()
        renderer = Renderer(
            registry,
            codec,
            page_store,
            self.translator,
            default_items_per_page=items_per_page,
            default_columns=columns,
        )
        presenter = MessagePresenter(transport)
        manager = ConversationManager(
            registry, renderer, presenter, transport, self.translator, codec
        )
        self.registry = registry
        self.dispatcher = Dispatcher(
            registry,
            renderer,
            presenter,
            manager,
            ChatSessionStore(self.storage),
            page_store,
            transport,
            self.translator,
            codec,
            resolve_user=self.resolve_user,
        )
        logger.info(
            "Menu app built",
            root_id=registry.root_id,
            callback_data_limit=callback_limit,
            storage=type(self.storage).__name__,
        )
        return self.dispatcher

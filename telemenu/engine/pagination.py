"""Per-chat page state for paginated lists."""

from typing import Dict, Tuple

PageKey = Tuple[int, str, int]


class PageStateStore:
    """Current zero-based page per (chat, menu, list index).

    Volatile: pages reset to 0 when the process restarts.
    """

    def __init__(self) -> None:
        self._pages: Dict[PageKey, int] = {}

    def get(self, chat_id: int, menu_id: str, list_index: int) -> int:
        return self._pages.get((chat_id, menu_id, list_index), 0)

    def set(self, chat_id: int, menu_id: str, list_index: int, page: int) -> None:
        key = (chat_id, menu_id, list_index)
        if page <= 0:
            self._pages.pop(key, None)
            return
        self._pages[key] = page

    def clear_chat(self, chat_id: int) -> None:
        for key in [k for k in self._pages if k[0] == chat_id]:
            del self._pages[key]

    def __len__(self) -> int:
        return len(self._pages)

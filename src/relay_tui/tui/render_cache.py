"""Incremental render cache for the chat list.

Rebuilding every row on each store change is wasteful when only the
selection or scroll offset moved. ListRenderCache keeps the rows of the last
build keyed by item id and decides per change whether a restyle of the
affected rows (fast path) is enough or every row must be rebuilt.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

from .models import ChangeType, StoreSnapshot, ViewType

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
ItemT_contra = TypeVar("ItemT_contra", contravariant=True)


class RenderStrategy(Enum):
    FAST_PATH = "fast_path"
    FULL_REBUILD = "full_rebuild"


@dataclass
class RowHandle:
    """One built row, addressed by the stable id of its item."""

    key: str
    renderable: Any
    selected: bool = False
    destroyed: bool = False


@dataclass
class ListHandle:
    """All rows of one build plus the state they were built for."""

    rows: dict[str, RowHandle] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)
    data_hash: str = ""
    selected_key: str | None = None
    scroll_offset: int = 0

    def row_at(self, index: int) -> RowHandle | None:
        if 0 <= index < len(self.order):
            return self.rows.get(self.order[index])
        return None

    def visible_rows(self, viewport_size: int | None = None) -> list[RowHandle]:
        """Rows from the scroll offset on, at most viewport_size of them."""
        keys = self.order[self.scroll_offset :]
        if viewport_size is not None and viewport_size > 0:
            keys = keys[:viewport_size]
        return [self.rows[key] for key in keys]


class RowFactory(Protocol[ItemT_contra]):
    """Builds and restyles rows for one kind of list item."""

    def key(self, item: ItemT_contra) -> str: ...

    def fingerprint(self, item: ItemT_contra) -> str:
        """Everything about the item that affects its rendering."""
        ...

    def build(self, item: ItemT_contra, selected: bool) -> Any: ...

    def restyle(self, handle: RowHandle, selected: bool) -> None: ...

    def destroy(self, handle: RowHandle) -> None: ...


class ListRenderCache(Generic[ItemT]):
    """Caches the rows of one list across renders."""

    def __init__(self, factory: RowFactory[ItemT]) -> None:
        self.factory = factory
        self.handle: ListHandle | None = None
        self.builds = 0

    def compute_hash(self, items: Sequence[ItemT]) -> str:
        """Identity of a list's content: ids and fingerprints, in order."""
        return "|".join(
            f"{self.factory.key(item)}:{self.factory.fingerprint(item)}" for item in items
        )

    def has_cached_list(self) -> bool:
        return self.handle is not None

    def decide(self, snapshot: StoreSnapshot, force_rebuild: bool = False) -> RenderStrategy:
        """Pick the cheapest strategy that renders snapshot correctly.

        The fast path needs a selection or scroll change on the chat list
        whose data still matches the cached build.
        """
        if force_rebuild or self.handle is None:
            return RenderStrategy.FULL_REBUILD
        if snapshot.current_view != ViewType.CHATS:
            return RenderStrategy.FULL_REBUILD
        if snapshot.last_change not in (ChangeType.SELECTION, ChangeType.SCROLL):
            return RenderStrategy.FULL_REBUILD
        if self.handle.data_hash != self.compute_hash(snapshot.chats):
            return RenderStrategy.FULL_REBUILD
        return RenderStrategy.FAST_PATH

    def build_list(
        self,
        items: Sequence[ItemT],
        selected_index: int = 0,
        scroll_offset: int = 0,
    ) -> ListHandle:
        """Full rebuild. Returns the cached handle when the data is unchanged.

        An unchanged handle still gets selected_index and scroll_offset applied.
        """
        data_hash = self.compute_hash(items)
        if self.handle is not None and self.handle.data_hash == data_hash:
            self.update_selection(selected_index)
            self.update_scroll(scroll_offset)
            return self.handle

        self._destroy_rows()
        handle = ListHandle(data_hash=data_hash, scroll_offset=max(0, scroll_offset))
        for index, item in enumerate(items):
            key = self.factory.key(item)
            selected = index == selected_index
            handle.rows[key] = RowHandle(
                key=key, renderable=self.factory.build(item, selected), selected=selected
            )
            handle.order.append(key)
            if selected:
                handle.selected_key = key
        self.handle = handle
        self.builds += 1
        logger.debug(f"Rebuilt list with {len(handle.order)} row(s)")
        return handle

    def update_selection(self, index: int) -> None:
        """Restyle only the previously and newly selected rows.

        An index without a row is ignored.
        """
        if self.handle is None:
            return
        row = self.handle.row_at(index)
        if row is None or row.key == self.handle.selected_key:
            return
        if self.handle.selected_key is not None:
            previous = self.handle.rows.get(self.handle.selected_key)
            if previous is not None:
                self.factory.restyle(previous, False)
                previous.selected = False
        self.factory.restyle(row, True)
        row.selected = True
        self.handle.selected_key = row.key

    def update_scroll(self, offset: int) -> None:
        if self.handle is not None:
            self.handle.scroll_offset = max(0, offset)

    def render(self, snapshot: StoreSnapshot, force_rebuild: bool = False) -> ListHandle:
        """Bring the cache up to date with snapshot using decide()."""
        chat_state = snapshot.chat
        handle = self.handle
        if handle is not None and self.decide(snapshot, force_rebuild) == RenderStrategy.FAST_PATH:
            self.update_selection(chat_state.selected_chat_index)
            self.update_scroll(chat_state.chat_list_scroll_offset)
            return handle
        if force_rebuild:
            self.destroy()
        return self.build_list(
            chat_state.chats, chat_state.selected_chat_index, chat_state.chat_list_scroll_offset
        )

    def _destroy_rows(self) -> None:
        if self.handle is None:
            return
        for row in self.handle.rows.values():
            if not row.destroyed:
                self.factory.destroy(row)
                row.destroyed = True

    def destroy(self) -> None:
        """Drop every row and forget the cached build."""
        self._destroy_rows()
        self.handle = None

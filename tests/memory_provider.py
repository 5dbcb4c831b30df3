"""In-process message store provider.

Holds stores, folders and items as plain Python objects. Serves as an
instrumented fixture for the test suite: it counts move calls, item fetches and
live container handles so traversal discipline can be observed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from itertools import count
from pathlib import Path

from mailstore_merge.models.types import Category, ItemField
from mailstore_merge.provider.base import (
    ContainerHandle,
    ContainerKey,
    ContainerUnavailableError,
    ItemHandle,
    MessageStoreError,
    MessageStoreProvider,
    MoveFailedError,
    Session,
    StoreHandle,
    StoreOpenError,
)

logger = logging.getLogger(__name__)

_ENTRY_IDS = count(1)

DEFAULT_FOLDER_NAMES: dict[Category, str] = {
    Category.mail: "Inbox",
    Category.appointment: "Calendar",
    Category.contact: "Contacts",
    Category.task: "Tasks",
    Category.note: "Notes",
    Category.journal: "Journal",
}


def _next_entry_id() -> str:
    """Return a process-unique entry id."""
    return f"{next(_ENTRY_IDS):08X}"


@dataclass(eq=False)
class MemoryItem:
    """A stored item."""

    message_class: str = "IPM.Note"
    fields: dict[ItemField, object] = field(default_factory=dict)
    broken_fields: frozenset[ItemField] = frozenset()
    fail_move: bool = False


@dataclass(eq=False)
class MemoryFolder:
    """A stored folder."""

    name: str
    entry_id: str = field(default_factory=_next_entry_id)
    items: list[MemoryItem] = field(default_factory=list)
    children: list[MemoryFolder] = field(default_factory=list)
    broken_items: bool = False
    broken_children: bool = False

    def add_folder(self, name: str) -> MemoryFolder:
        """Create and return a child folder."""
        child = MemoryFolder(name=name)
        self.children.append(child)
        return child

    def add_item(self, message_class: str = "IPM.Note", **fields: object) -> MemoryItem:
        """Create and return an item; keyword names are ItemField values."""
        item = MemoryItem(
            message_class=message_class,
            fields={ItemField(name): value for name, value in fields.items()},
        )
        self.items.append(item)
        return item

    def walk(self) -> Iterator[MemoryFolder]:
        """Yield this folder and all descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def child(self, name: str) -> MemoryFolder:
        """Return the direct child with the given name.

        Raises:
            KeyError: If no such child exists.
        """
        for child in self.children:
            if child.name == name:
                return child
        raise KeyError(name)


@dataclass(eq=False)
class MemoryStore:
    """A stored message repository with standard default folders."""

    store_id: str
    display_name: str
    root: MemoryFolder
    defaults: dict[Category, MemoryFolder]
    store_scoped_defaults: bool = True

    @classmethod
    def create(cls, *, display_name: str) -> MemoryStore:
        """Create a store populated with the standard default folders.

        Args:
            display_name: Name shown for the store and its root folder.

        Returns:
            New MemoryStore.
        """
        root = MemoryFolder(name=display_name)
        defaults = {
            category: root.add_folder(folder_name)
            for category, folder_name in DEFAULT_FOLDER_NAMES.items()
        }
        return cls(
            store_id=f"store-{_next_entry_id()}",
            display_name=display_name,
            root=root,
            defaults=defaults,
        )

    def folder(self, path: str) -> MemoryFolder:
        """Return the folder at a slash-separated path below the root."""
        current = self.root
        for part in path.strip("/").split("/"):
            if part:
                current = current.child(part)
        return current

    def find(self, entry_id: str) -> MemoryFolder | None:
        """Return the folder with the given entry id, if present."""
        for folder in self.root.walk():
            if folder.entry_id == entry_id:
                return folder
        return None

    def total_items(self) -> int:
        """Return the number of items anywhere in the store."""
        return sum(len(folder.items) for folder in self.root.walk())


@dataclass
class MemoryStats:
    """Instrumentation counters for a provider."""

    move_calls: int = 0
    item_fetches: int = 0
    live_containers: int = 0
    peak_live_containers: int = 0
    reclaims: int = 0
    detached: list[str] = field(default_factory=list)


class MemoryItemHandle(ItemHandle):
    """Handle to a MemoryItem inside a known folder."""

    def __init__(self, provider: InMemoryProvider, folder: MemoryFolder, item: MemoryItem) -> None:
        self._provider = provider
        self._folder = folder
        self.item = item

    def _read_raw(self, field: ItemField) -> object | None:
        if field in self.item.broken_fields:
            raise MessageStoreError(f"property {field.value} unavailable")
        if field is ItemField.message_class:
            return self.item.message_class
        return self.item.fields.get(field)

    def move_to(self, container: ContainerHandle) -> None:
        self._provider.stats.move_calls += 1
        if self.item.fail_move:
            raise MoveFailedError("store rejected the move")
        if not isinstance(container, MemoryContainerHandle) or container.released:
            raise MoveFailedError("destination container handle is not usable")
        try:
            self._folder.items.remove(self.item)
        except ValueError:
            raise MoveFailedError("item is no longer in its folder") from None
        container.folder.items.append(self.item)
        self._folder = container.folder


class MemoryContainerHandle(ContainerHandle):
    """Handle to a MemoryFolder; counted while live."""

    def __init__(self, provider: InMemoryProvider, store: MemoryStore, folder: MemoryFolder) -> None:
        self._provider = provider
        self._store = store
        self.folder = folder
        stats = provider.stats
        stats.live_containers += 1
        stats.peak_live_containers = max(stats.peak_live_containers, stats.live_containers)

    def _on_release(self) -> None:
        self._provider.stats.live_containers -= 1

    @property
    def key(self) -> ContainerKey:
        return ContainerKey(store_id=self._store.store_id, entry_id=self.folder.entry_id)

    @property
    def name(self) -> str:
        return self.folder.name

    def item_count(self) -> int:
        if self.folder.broken_items:
            raise ContainerUnavailableError(f"cannot enumerate items of {self.folder.name}")
        return len(self.folder.items)

    def item_at(self, position: int) -> ItemHandle:
        if not 1 <= position <= len(self.folder.items):
            raise MessageStoreError(f"no item at position {position} in {self.folder.name}")
        self._provider.stats.item_fetches += 1
        return MemoryItemHandle(self._provider, self.folder, self.folder.items[position - 1])

    def child_count(self) -> int:
        if self.folder.broken_children:
            raise ContainerUnavailableError(f"cannot enumerate children of {self.folder.name}")
        return len(self.folder.children)

    def child_key_at(self, position: int) -> ContainerKey:
        if not 1 <= position <= len(self.folder.children):
            raise MessageStoreError(f"no child at position {position} in {self.folder.name}")
        child = self.folder.children[position - 1]
        return ContainerKey(store_id=self._store.store_id, entry_id=child.entry_id)

    def resolve(self, key: ContainerKey) -> ContainerHandle:
        return self._provider.resolve_container(key)


class MemoryStoreHandle(StoreHandle):
    """Handle to a MemoryStore."""

    def __init__(self, provider: InMemoryProvider, store: MemoryStore) -> None:
        self._provider = provider
        self.store = store

    @property
    def store_id(self) -> str:
        return self.store.store_id

    @property
    def display_name(self) -> str:
        return self.store.display_name

    def default_container(self, category: Category) -> ContainerHandle:
        if not self.store.store_scoped_defaults:
            raise ContainerUnavailableError("store-scoped default folders unsupported")
        folder = self.store.defaults.get(category)
        if folder is None:
            raise ContainerUnavailableError(f"no default folder for {category.value}")
        return MemoryContainerHandle(self._provider, self.store, folder)

    def root_container(self) -> ContainerHandle:
        return MemoryContainerHandle(self._provider, self.store, self.store.root)


class MemorySession(Session):
    """Session over an InMemoryProvider's stores."""

    def __init__(self, provider: InMemoryProvider) -> None:
        self._provider = provider

    def open_or_create_store(self, path: Path) -> StoreHandle:
        key = str(path)
        if key in self._provider.unopenable:
            raise StoreOpenError(f"cannot open store {key}")
        store = self._provider.stores.get(key)
        if store is None:
            logger.debug("Creating in-memory store %s", key)
            store = self._provider.add_store(key)
        return MemoryStoreHandle(self._provider, store)

    def default_store(self) -> StoreHandle:
        store = self._provider.default
        if store is None:
            raise StoreOpenError("no default store configured")
        return MemoryStoreHandle(self._provider, store)

    def detach_store(self, store: StoreHandle) -> None:
        self._provider.stats.detached.append(store.store_id)

    def store_exists(self, path: Path) -> bool:
        return str(path) in self._provider.stores

    def default_container(self, category: Category) -> ContainerHandle:
        store = self._provider.default
        if store is None or category not in store.defaults:
            raise ContainerUnavailableError(f"no session default folder for {category.value}")
        return MemoryContainerHandle(self._provider, store, store.defaults[category])

    def reclaim(self) -> None:
        self._provider.stats.reclaims += 1


class InMemoryProvider(MessageStoreProvider):
    """Provider whose stores live in process memory."""

    def __init__(self) -> None:
        self.stores: dict[str, MemoryStore] = {}
        self.default: MemoryStore | None = None
        self.unopenable: set[str] = set()
        self.stats = MemoryStats()

    def add_store(self, path: str | Path, *, default: bool = False) -> MemoryStore:
        """Register a new store under a path.

        Args:
            path: Path the store is opened by.
            default: Whether the store is the profile's default mailbox.

        Returns:
            The created store.
        """
        key = str(path)
        store = MemoryStore.create(display_name=Path(key).stem or key)
        self.stores[key] = store
        if default:
            self.default = store
        return store

    def resolve_container(self, key: ContainerKey) -> ContainerHandle:
        """Open a container handle from its durable key.

        Raises:
            ContainerUnavailableError: If the key no longer resolves.
        """
        candidates = list(self.stores.values())
        if self.default is not None:
            candidates.append(self.default)
        for store in candidates:
            if store.store_id != key.store_id:
                continue
            folder = store.find(key.entry_id)
            if folder is not None:
                return MemoryContainerHandle(self, store, folder)
        raise ContainerUnavailableError(f"container {key.entry_id} not found in {key.store_id}")

    def connect(self) -> Session:
        return MemorySession(self)

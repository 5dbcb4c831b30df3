"""Message store provider boundary.

Everything the merge engine knows about a concrete message store goes through
the handle types defined here. A provider binds them to a native automation
facility (Outlook MAPI, an in-process fixture, ...). Handles are scarce
external resources: callers acquire them in ``with`` blocks so they are
released on every exit path.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Self

from mailstore_merge.models.types import Category, ItemField

logger = logging.getLogger(__name__)


class MessageStoreError(RuntimeError):
    """Base class for provider failures."""


class StoreNotFoundError(MessageStoreError):
    """Raised when a store that must already exist is missing."""


class StoreOpenError(MessageStoreError):
    """Raised when a store cannot be opened or created."""


class ContainerUnavailableError(MessageStoreError):
    """Raised when a container cannot be resolved or enumerated."""


class MoveFailedError(MessageStoreError):
    """Raised when the store rejects or cannot complete a move."""


@dataclass(frozen=True)
class ContainerKey:
    """Durable identity of a container within a run."""

    store_id: str
    entry_id: str


@dataclass(frozen=True)
class FieldRead:
    """Outcome of reading one item attribute.

    A read either carries a value or the reason it was unavailable; it never
    raises.
    """

    value: object | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        """Return True when the read produced a usable value."""
        return self.error is None and self.value is not None

    def text(self) -> str:
        """Return the value as a string, or an empty string when unavailable."""
        if not self.available:
            return ""
        return str(self.value)


class Handle(ABC):
    """A live reference to an object inside the external store."""

    _released: bool = False

    @property
    def released(self) -> bool:
        """Return True once the handle has been released."""
        return self._released

    def release(self) -> None:
        """Release the underlying reference. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        self._on_release()

    def _on_release(self) -> None:
        """Provider hook invoked exactly once on release."""

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class ItemHandle(Handle):
    """One message-like record inside a container."""

    def read(self, field: ItemField) -> FieldRead:
        """Read an attribute without ever raising.

        Args:
            field: Attribute to read.

        Returns:
            A FieldRead holding the value or the failure reason.
        """
        try:
            value = self._read_raw(field)
        except Exception as exc:
            logger.debug("Field read failed (%s): %r", field.value, exc)
            return FieldRead(error=repr(exc))
        return FieldRead(value=value)

    def type_tag(self) -> FieldRead:
        """Return the item's free-form type tag."""
        return self.read(ItemField.message_class)

    def describe(self) -> str:
        """Return a best-effort human description of the item."""
        subject = self.read(ItemField.subject).text().strip()
        tag = self.type_tag().text().strip() or "?"
        return f"[{tag}] {subject}" if subject else f"[{tag}] (no subject)"

    @abstractmethod
    def _read_raw(self, field: ItemField) -> object | None:
        """Read an attribute from the store; may raise."""

    @abstractmethod
    def move_to(self, container: ContainerHandle) -> None:
        """Move the item into another container.

        Raises:
            MoveFailedError: If the store rejects the move.
        """


class ContainerHandle(Handle):
    """A folder-like node in a store hierarchy."""

    @property
    @abstractmethod
    def key(self) -> ContainerKey:
        """Return the durable key of this container."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the display name of this container."""

    @abstractmethod
    def item_count(self) -> int:
        """Return the number of items currently held."""

    @abstractmethod
    def item_at(self, position: int) -> ItemHandle:
        """Return the item at a 1-based position."""

    @abstractmethod
    def child_count(self) -> int:
        """Return the number of direct child containers."""

    @abstractmethod
    def child_key_at(self, position: int) -> ContainerKey:
        """Return the key of the child at a 1-based position."""

    @abstractmethod
    def resolve(self, key: ContainerKey) -> ContainerHandle:
        """Open a container handle from a durable key."""


class StoreHandle(Handle):
    """An opened message repository."""

    @property
    @abstractmethod
    def store_id(self) -> str:
        """Return the stable store identifier."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Return a human-readable store name."""

    @abstractmethod
    def default_container(self, category: Category) -> ContainerHandle:
        """Return the store-scoped default container for a category."""

    @abstractmethod
    def root_container(self) -> ContainerHandle:
        """Return the root of the store's folder tree."""


class Session(ABC):
    """A connection to the message store facility."""

    @abstractmethod
    def open_or_create_store(self, path: Path) -> StoreHandle:
        """Open a store file, creating it if it does not exist."""

    @abstractmethod
    def default_store(self) -> StoreHandle:
        """Return the profile's default mailbox store."""

    @abstractmethod
    def detach_store(self, store: StoreHandle) -> None:
        """Detach a store from the session."""

    def store_exists(self, path: Path) -> bool:
        """Return True if a store exists at the given path."""
        return path.exists()

    def default_container(self, category: Category) -> ContainerHandle:
        """Session-wide default container lookup, used as a fallback.

        Raises:
            ContainerUnavailableError: If the provider has no such mechanism.
        """
        raise ContainerUnavailableError(f"No session-wide default container for {category.value}")

    def reclaim(self) -> None:
        """Ask the facility to free unused resources."""

    def close(self) -> None:
        """Close the session."""


class MessageStoreProvider(ABC):
    """Factory for sessions."""

    @abstractmethod
    def connect(self) -> Session:
        """Connect to the message store facility."""

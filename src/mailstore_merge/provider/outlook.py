"""Outlook MAPI provider over pywin32 COM automation.

Only Windows with Outlook installed can connect. The COM modules are imported
when a session is opened so that the rest of the package stays importable on
any platform.
"""

from __future__ import annotations

import gc
import logging
from pathlib import Path
from typing import Any

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

OL_STORE_UNICODE = 3

# OlDefaultFolders
OL_DEFAULT_FOLDERS: dict[Category, int] = {
    Category.mail: 6,
    Category.other: 6,
    Category.appointment: 9,
    Category.contact: 10,
    Category.journal: 11,
    Category.note: 12,
    Category.task: 13,
}

_PROPERTY_NAMES: dict[ItemField, tuple[str, ...]] = {
    ItemField.message_class: ("MessageClass",),
    ItemField.subject: ("Subject",),
    ItemField.body: ("Body",),
    ItemField.start: ("Start", "StartDate"),
    ItemField.due: ("DueDate",),
    ItemField.duration: ("Duration",),
    ItemField.location: ("Location",),
    ItemField.percent_complete: ("PercentComplete",),
    ItemField.full_name: ("FullName",),
    ItemField.company: ("CompanyName",),
    ItemField.email1: ("Email1Address",),
    ItemField.email2: ("Email2Address",),
    ItemField.email3: ("Email3Address",),
    ItemField.sent_on: ("SentOn",),
    ItemField.sender_address: ("SenderEmailAddress",),
    ItemField.size: ("Size",),
}


def _same_path(raw: object, path: Path) -> bool:
    """Return True if a store's FilePath refers to the given path."""
    if not raw:
        return False
    try:
        return Path(str(raw)).resolve() == path
    except OSError:
        return False


class OutlookItemHandle(ItemHandle):
    """Wraps an Outlook item COM object."""

    def __init__(self, com_item: Any) -> None:
        self._com = com_item

    def _on_release(self) -> None:
        self._com = None

    def _read_raw(self, field: ItemField) -> object | None:
        last_exc: AttributeError | None = None
        for prop in _PROPERTY_NAMES[field]:
            try:
                return getattr(self._com, prop)
            except AttributeError as exc:
                last_exc = exc
        assert last_exc is not None
        raise last_exc

    def move_to(self, container: ContainerHandle) -> None:
        if not isinstance(container, OutlookContainerHandle) or container.com is None:
            raise MoveFailedError("destination folder handle is not usable")
        try:
            self._com.Move(container.com)
        except Exception as exc:
            raise MoveFailedError(str(exc)) from exc


class OutlookContainerHandle(ContainerHandle):
    """Wraps an Outlook MAPIFolder COM object."""

    def __init__(self, session: OutlookSession, com_folder: Any) -> None:
        self._session = session
        self.com = com_folder
        try:
            self._key = ContainerKey(
                store_id=str(com_folder.StoreID),
                entry_id=str(com_folder.EntryID),
            )
            self._name = str(com_folder.Name)
        except Exception as exc:
            raise ContainerUnavailableError(f"cannot identify folder: {exc}") from exc

    def _on_release(self) -> None:
        self.com = None

    @property
    def key(self) -> ContainerKey:
        return self._key

    @property
    def name(self) -> str:
        return self._name

    def item_count(self) -> int:
        try:
            return int(self.com.Items.Count)
        except Exception as exc:
            raise ContainerUnavailableError(f"{self._name}: cannot count items: {exc}") from exc

    def item_at(self, position: int) -> ItemHandle:
        try:
            return OutlookItemHandle(self.com.Items.Item(position))
        except Exception as exc:
            raise MessageStoreError(f"{self._name}: cannot fetch item {position}: {exc}") from exc

    def child_count(self) -> int:
        try:
            return int(self.com.Folders.Count)
        except Exception as exc:
            raise ContainerUnavailableError(f"{self._name}: cannot count folders: {exc}") from exc

    def child_key_at(self, position: int) -> ContainerKey:
        try:
            child = self.com.Folders.Item(position)
            key = ContainerKey(store_id=str(child.StoreID), entry_id=str(child.EntryID))
        except Exception as exc:
            raise ContainerUnavailableError(
                f"{self._name}: cannot read folder {position}: {exc}",
            ) from exc
        del child
        return key

    def resolve(self, key: ContainerKey) -> ContainerHandle:
        return self._session.folder_from_key(key)


class OutlookStoreHandle(StoreHandle):
    """Wraps an Outlook Store COM object."""

    def __init__(self, session: OutlookSession, com_store: Any) -> None:
        self._session = session
        self.com = com_store
        self._store_id = str(com_store.StoreID)
        self._display_name = str(com_store.DisplayName)

    def _on_release(self) -> None:
        self.com = None

    @property
    def store_id(self) -> str:
        return self._store_id

    @property
    def display_name(self) -> str:
        return self._display_name

    def default_container(self, category: Category) -> ContainerHandle:
        try:
            folder = self.com.GetDefaultFolder(OL_DEFAULT_FOLDERS[category])
        except Exception as exc:
            raise ContainerUnavailableError(
                f"{self._display_name}: no default {category.value} folder: {exc}",
            ) from exc
        return OutlookContainerHandle(self._session, folder)

    def root_container(self) -> ContainerHandle:
        try:
            folder = self.com.GetRootFolder()
        except Exception as exc:
            raise ContainerUnavailableError(f"{self._display_name}: no root folder: {exc}") from exc
        return OutlookContainerHandle(self._session, folder)


class OutlookSession(Session):
    """A MAPI namespace session."""

    def __init__(self, namespace: Any, *, com_runtime: Any = None) -> None:
        """Initialize the session.

        Args:
            namespace: Outlook MAPI namespace COM object.
            com_runtime: The ``pythoncom`` module, when COM was initialized here.
        """
        self._namespace = namespace
        self._com_runtime = com_runtime

    def _find_store(self, path: Path) -> Any | None:
        stores = self._namespace.Stores
        for i in range(1, int(stores.Count) + 1):
            store = stores.Item(i)
            try:
                if _same_path(store.FilePath, path):
                    return store
            except Exception as exc:
                logger.debug("Skipping store %s while matching %s: %r", i, path, exc)
        return None

    def open_or_create_store(self, path: Path) -> StoreHandle:
        resolved = path.expanduser().resolve()
        try:
            com_store = self._find_store(resolved)
            if com_store is None:
                logger.info("Attaching store %s", resolved)
                self._namespace.AddStoreEx(str(resolved), OL_STORE_UNICODE)
                com_store = self._find_store(resolved)
        except Exception as exc:
            raise StoreOpenError(f"cannot open store {resolved}: {exc}") from exc
        if com_store is None:
            raise StoreOpenError(f"store {resolved} did not appear after attach")
        return OutlookStoreHandle(self, com_store)

    def default_store(self) -> StoreHandle:
        try:
            return OutlookStoreHandle(self, self._namespace.DefaultStore)
        except Exception as exc:
            raise StoreOpenError(f"cannot open default store: {exc}") from exc

    def detach_store(self, store: StoreHandle) -> None:
        if not isinstance(store, OutlookStoreHandle) or store.com is None:
            raise MessageStoreError("store handle is not usable")
        try:
            self._namespace.RemoveStore(store.com.GetRootFolder())
        except Exception as exc:
            raise MessageStoreError(f"cannot detach {store.display_name}: {exc}") from exc

    def default_container(self, category: Category) -> ContainerHandle:
        try:
            folder = self._namespace.GetDefaultFolder(OL_DEFAULT_FOLDERS[category])
        except Exception as exc:
            raise ContainerUnavailableError(
                f"no session default {category.value} folder: {exc}",
            ) from exc
        return OutlookContainerHandle(self, folder)

    def folder_from_key(self, key: ContainerKey) -> ContainerHandle:
        """Resolve a folder from its entry id and store id.

        Raises:
            ContainerUnavailableError: If the folder cannot be found.
        """
        try:
            folder = self._namespace.GetFolderFromID(key.entry_id, key.store_id)
        except Exception as exc:
            raise ContainerUnavailableError(f"cannot resolve folder {key.entry_id}: {exc}") from exc
        return OutlookContainerHandle(self, folder)

    def reclaim(self) -> None:
        if self._com_runtime is not None:
            self._com_runtime.CoFreeUnusedLibraries()

    def close(self) -> None:
        self._namespace = None
        gc.collect()
        if self._com_runtime is not None:
            self._com_runtime.CoUninitialize()
            self._com_runtime = None


class OutlookProvider(MessageStoreProvider):
    """Connects to a running (or launchable) Outlook instance."""

    def connect(self) -> Session:
        """Initialize COM on this thread and open the MAPI namespace.

        Returns:
            OutlookSession bound to the MAPI namespace.

        Raises:
            StoreOpenError: If Outlook automation is unavailable.
        """
        try:
            import pythoncom
            import win32com.client
        except ImportError as exc:
            raise StoreOpenError(f"Outlook automation requires pywin32 on Windows: {exc}") from exc

        pythoncom.CoInitialize()
        try:
            app = win32com.client.Dispatch("Outlook.Application")
            namespace = app.GetNamespace("MAPI")
        except Exception as exc:
            pythoncom.CoUninitialize()
            raise StoreOpenError(f"Outlook automation unavailable: {exc}") from exc
        return OutlookSession(namespace, com_runtime=pythoncom)

"""Store opening and default-container resolution."""

from __future__ import annotations

import logging
from pathlib import Path

from mailstore_merge.models.types import Category
from mailstore_merge.pipeline.governor import ResourceGovernor
from mailstore_merge.provider.base import (
    ContainerHandle,
    MessageStoreError,
    Session,
    StoreHandle,
    StoreNotFoundError,
)
from mailstore_merge.stores.classifier import routing_category

logger = logging.getLogger(__name__)


class StoreAccessor:
    """Opens stores and caches their default containers for the run.

    Containers are cached by ``(store_id, category)``. Once a pair is
    resolved (or found unresolvable) it is not looked up again.
    """

    def __init__(self, *, session: Session, governor: ResourceGovernor) -> None:
        """Initialize the accessor.

        Args:
            session: Open provider session.
            governor: Registry for long-lived handles.
        """
        self._session = session
        self._governor = governor
        self._containers: dict[tuple[str, Category], ContainerHandle | None] = {}
        self._stores: dict[str, StoreHandle] = {}

    def open_store(self, path: Path | None, *, create_if_missing: bool) -> StoreHandle:
        """Open a store by path, or the default store when path is None.

        Args:
            path: Store file path, or None for the profile's default store.
            create_if_missing: Create the store if it does not exist.

        Returns:
            Opened store handle.

        Raises:
            StoreNotFoundError: If the store is missing and may not be created.
            StoreOpenError: If the provider cannot open the store.
        """
        if path is None:
            store = self._session.default_store()
        else:
            if not create_if_missing and not self._session.store_exists(path):
                raise StoreNotFoundError(f"store does not exist: {path}")
            store = self._session.open_or_create_store(path)
        self._stores[store.store_id] = store
        self._governor.register(store, f"store:{store.display_name}")
        logger.debug("Opened store %s (%s)", store.display_name, store.store_id)
        return store

    def resolve_container(self, store: StoreHandle, category: Category) -> ContainerHandle | None:
        """Return the store's default container for a category.

        Mail and Other share the inbox-equivalent container. If the store
        cannot resolve it directly, the session-wide lookup is tried; its
        result is only accepted when it belongs to the same store.

        Args:
            store: Store to resolve in.
            category: Item category.

        Returns:
            The cached container handle, or None if it cannot be resolved.
        """
        routed = routing_category(category)
        cache_key = (store.store_id, routed)
        if cache_key in self._containers:
            return self._containers[cache_key]

        container = self._lookup(store, routed)
        self._containers[cache_key] = container
        if container is not None:
            self._governor.register(container, f"container:{store.display_name}/{container.name}")
        return container

    def _lookup(self, store: StoreHandle, category: Category) -> ContainerHandle | None:
        try:
            return store.default_container(category)
        except MessageStoreError as exc:
            logger.debug("Store-scoped %s lookup failed on %s: %s", category.value, store.display_name, exc)

        try:
            candidate = self._session.default_container(category)
        except MessageStoreError as exc:
            logger.warning(
                "No %s container in %s: %s",
                category.value,
                store.display_name,
                exc,
            )
            return None
        if candidate.key.store_id != store.store_id:
            candidate.release()
            logger.warning(
                "No %s container in %s (session default belongs to another store)",
                category.value,
                store.display_name,
            )
            return None
        return candidate

    def root_container(self, store: StoreHandle) -> ContainerHandle:
        """Return a fresh handle to the store's root container; caller releases it."""
        return store.root_container()

    def close(self, store: StoreHandle, *, detach: bool = False) -> None:
        """Release a store, its cached containers, and optionally detach it.

        Args:
            store: Store to close.
            detach: Whether to detach the store from the session.
        """
        for cache_key in [key for key in self._containers if key[0] == store.store_id]:
            container = self._containers.pop(cache_key)
            if container is not None:
                self._governor.unregister(container)
                container.release()
        if detach:
            try:
                self._session.detach_store(store)
                logger.info("Detached %s", store.display_name)
            except MessageStoreError as exc:
                logger.warning("Failed to detach %s: %s", store.display_name, exc)
        self._stores.pop(store.store_id, None)
        self._governor.unregister(store)
        store.release()

    def close_all(self) -> None:
        """Close every store still open, without detaching."""
        for store in list(self._stores.values()):
            self.close(store)

"""Depth-first traversal of a container tree that is mutated while walked."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field

from mailstore_merge.provider.base import ContainerHandle, ContainerKey, ItemHandle

logger = logging.getLogger(__name__)

ItemVisitor = Callable[[ItemHandle], object]


@dataclass
class TraversalStats:
    """Visit counters for one or more traversals."""

    containers: int = 0
    items: int = 0
    unreadable_containers: int = 0
    items_by_container: Counter[str] = field(default_factory=Counter)


class Traverser:
    """Visits every item and every sub-container below a start container.

    Items are fetched by descending position, which stays correct when the
    visitor moves the current item out of the container. Child containers
    are captured as durable keys first and re-resolved one at a time, so at
    most one handle per tree level is live.
    """

    def __init__(self, *, stats: TraversalStats | None = None) -> None:
        """Initialize the traverser.

        Args:
            stats: Counters to accumulate into; a new set is created if omitted.
        """
        self.stats = stats if stats is not None else TraversalStats()

    def traverse(self, start: ContainerHandle, visit: ItemVisitor) -> TraversalStats:
        """Walk ``start`` and all of its descendants.

        Args:
            start: Container to begin at. The caller keeps ownership.
            visit: Called once per item; its exceptions are logged and skipped.

        Returns:
            The accumulated statistics.
        """
        self._walk(start, visit, path=start.name)
        return self.stats

    def _walk(self, container: ContainerHandle, visit: ItemVisitor, *, path: str) -> None:
        self.stats.containers += 1
        if path in self.stats.items_by_container:
            # same-named sibling, or a second store with the same name
            path = f"{path}#{container.key.entry_id}"
        self.stats.items_by_container[path] += 0
        self._visit_items(container, visit, path=path)

        for key in self._child_keys(container, path=path):
            try:
                child = container.resolve(key)
            except Exception as exc:
                logger.warning("Cannot open a subfolder of %s, skipping it: %s", path, exc)
                continue
            with child:
                self._walk(child, visit, path=f"{path}/{child.name}")

    def _visit_items(self, container: ContainerHandle, visit: ItemVisitor, *, path: str) -> None:
        try:
            total = container.item_count()
        except Exception as exc:
            self.stats.unreadable_containers += 1
            logger.warning("Cannot count items in %s, treating as empty: %s", path, exc)
            return

        for position in range(total, 0, -1):
            try:
                item = container.item_at(position)
            except Exception as exc:
                logger.warning("Cannot read item %d in %s: %s", position, path, exc)
                continue
            with item:
                self.stats.items += 1
                self.stats.items_by_container[path] += 1
                try:
                    visit(item)
                except Exception:
                    logger.exception("Unhandled error processing item %d in %s", position, path)

    def _child_keys(self, container: ContainerHandle, *, path: str) -> list[ContainerKey]:
        try:
            total = container.child_count()
        except Exception as exc:
            self.stats.unreadable_containers += 1
            logger.warning("Cannot list subfolders of %s, treating as none: %s", path, exc)
            return []

        keys: list[ContainerKey] = []
        for position in range(1, total + 1):
            try:
                keys.append(container.child_key_at(position))
            except Exception as exc:
                logger.warning("Cannot read subfolder %d of %s: %s", position, path, exc)
        return keys

"""Per-destination-container fingerprint index."""

from __future__ import annotations

import logging
import time

from mailstore_merge.provider.base import ContainerHandle, ContainerKey
from mailstore_merge.stores.classifier import category_of
from mailstore_merge.utils.fingerprint import compute_fingerprint
from mailstore_merge.utils.logging import PERF

logger = logging.getLogger(__name__)


class DedupIndex:
    """Fingerprints already present in each destination container.

    A container's set is built lazily by scanning its contents once, then
    kept current by ``insert`` as items are moved in. It is never rebuilt
    during a run.
    """

    def __init__(self) -> None:
        """Initialize an empty index."""
        self._by_container: dict[ContainerKey, set[str]] = {}
        self.scans = 0

    def is_built(self, key: ContainerKey) -> bool:
        """Return True if the container has already been scanned."""
        return key in self._by_container

    def ensure_built(self, container: ContainerHandle) -> None:
        """Scan a container's existing items unless already indexed.

        Items that cannot be read are skipped; a missed fingerprint can only
        let a duplicate through, never suppress a distinct item.

        Args:
            container: Destination container to index.
        """
        key = container.key
        if key in self._by_container:
            return
        fingerprints: set[str] = set()
        self._by_container[key] = fingerprints
        self.scans += 1

        started = time.perf_counter()
        try:
            total = container.item_count()
        except Exception as exc:
            logger.warning("Cannot enumerate %s for duplicate index: %s", container.name, exc)
            return

        skipped = 0
        for position in range(1, total + 1):
            try:
                with container.item_at(position) as item:
                    category = category_of(item.type_tag().text())
                    fingerprints.add(compute_fingerprint(item, category))
            except Exception as exc:
                skipped += 1
                logger.debug("Index scan skipped item %s in %s: %r", position, container.name, exc)

        logger.log(
            PERF,
            "Indexed %d items in %s (%d unreadable) in %.2fs",
            total - skipped,
            container.name,
            skipped,
            time.perf_counter() - started,
        )

    def contains(self, key: ContainerKey, fingerprint: str) -> bool:
        """Return True if the fingerprint is present for the container."""
        return fingerprint in self._by_container.get(key, ())

    def insert(self, key: ContainerKey, fingerprint: str) -> None:
        """Record a fingerprint as present in the container."""
        self._by_container.setdefault(key, set()).add(fingerprint)

    def size(self, key: ContainerKey) -> int:
        """Return the number of distinct fingerprints for the container."""
        return len(self._by_container.get(key, ()))

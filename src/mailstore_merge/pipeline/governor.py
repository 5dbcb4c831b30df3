"""Handle accounting, periodic reclamation, and memory reporting."""

from __future__ import annotations

import gc
import logging
import time

import psutil

from mailstore_merge.config.settings import GovernorSettings
from mailstore_merge.provider.base import Handle, Session
from mailstore_merge.utils.logging import PERF

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


class ResourceGovernor:
    """Bounds long-lived handles and forces periodic reclamation.

    The external store accumulates proxy objects under sustained automation
    traffic, so every ``reclaim_every`` moved items the governor collects
    garbage and asks the session to free unused resources.
    """

    def __init__(self, *, session: Session, settings: GovernorSettings) -> None:
        """Initialize the governor.

        Args:
            session: Session whose resources are reclaimed.
            settings: Reclamation and monitoring cadences.
        """
        self._session = session
        self._s = settings
        self._live: dict[int, str] = {}
        self.reclaims = 0
        self.memory_reports = 0

    @property
    def live_handles(self) -> int:
        """Return the number of registered long-lived handles."""
        return len(self._live)

    def register(self, handle: Handle, label: str) -> None:
        """Track a long-lived handle until it is unregistered."""
        self._live[id(handle)] = label

    def unregister(self, handle: Handle) -> None:
        """Stop tracking a handle."""
        self._live.pop(id(handle), None)

    def after_move(self, moved: int) -> None:
        """Run whichever cadenced actions fall due at this moved count.

        Args:
            moved: Cumulative moved-item counter for the run.
        """
        if moved <= 0:
            return
        if self._s.reclaim_every and moved % self._s.reclaim_every == 0:
            self.reclaim(moved=moved)
        if self._s.monitor and moved % self._s.monitor_every == 0:
            self.report_memory(moved=moved)

    def reclaim(self, *, moved: int) -> None:
        """Release unreferenced proxies and ask the session to free resources."""
        started = time.perf_counter()
        collected = gc.collect()
        try:
            self._session.reclaim()
        except Exception as exc:
            logger.warning("Session reclamation failed at %d moved: %s", moved, exc)
        self.reclaims += 1
        logger.log(
            PERF,
            "Reclaimed at %d moved: %d objects collected, %d live handles, %.3fs",
            moved,
            collected,
            self.live_handles,
            time.perf_counter() - started,
        )

    def report_memory(self, *, moved: int) -> None:
        """Log process and host memory; failures are ignored."""
        try:
            rss = psutil.Process().memory_info().rss / _MB
            host = psutil.virtual_memory()
        except Exception:
            return
        self.memory_reports += 1
        logger.log(
            PERF,
            "Memory at %d moved: process %.1f MB, host %.1f%% used (%.0f MB available)",
            moved,
            rss,
            host.percent,
            host.available / _MB,
        )

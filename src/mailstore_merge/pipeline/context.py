"""Per-run state shared by the merge components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from mailstore_merge.config.settings import MergeSettings
from mailstore_merge.models.types import Category, Outcome, SummaryReport
from mailstore_merge.pipeline.governor import ResourceGovernor
from mailstore_merge.pipeline.traversal import TraversalStats
from mailstore_merge.provider.base import Session, StoreHandle
from mailstore_merge.storage.dedup_index import DedupIndex
from mailstore_merge.stores.accessor import StoreAccessor


def _zero_counts() -> dict[Category, int]:
    """Return a zeroed per-category counter."""
    return {category: 0 for category in Category}


@dataclass
class RunSummary:
    """Running counters for one merge run."""

    moved: int = 0
    skipped_duplicate: int = 0
    failed: int = 0
    sources_processed: int = 0
    sources_failed: int = 0
    moved_by_category: dict[Category, int] = field(default_factory=_zero_counts)

    def record(self, outcome: Outcome, category: Category | None = None) -> None:
        """Tally one item outcome.

        Args:
            outcome: Result of processing the item.
            category: Item category; required for moved items.
        """
        if outcome is Outcome.moved:
            self.moved += 1
            if category is not None:
                self.moved_by_category[category] += 1
        elif outcome is Outcome.skipped_duplicate:
            self.skipped_duplicate += 1
        else:
            self.failed += 1

    def to_report(self, *, destination: str, preview: bool) -> SummaryReport:
        """Build the serializable report for this summary."""
        return SummaryReport(
            created_at=datetime.now(tz=UTC),
            destination=destination,
            preview=preview,
            moved=self.moved,
            skipped_duplicate=self.skipped_duplicate,
            failed=self.failed,
            sources_processed=self.sources_processed,
            sources_failed=self.sources_failed,
            moved_by_category={c.value: n for c, n in self.moved_by_category.items()},
        )


@dataclass
class RunContext:
    """Everything a run owns; nothing here outlives the run."""

    session: Session
    options: MergeSettings
    governor: ResourceGovernor
    accessor: StoreAccessor
    dedup: DedupIndex = field(default_factory=DedupIndex)
    summary: RunSummary = field(default_factory=RunSummary)
    traversal: TraversalStats = field(default_factory=TraversalStats)
    destination: StoreHandle | None = None

    @property
    def preview(self) -> bool:
        """Return True when mutations are suppressed."""
        return self.options.preview

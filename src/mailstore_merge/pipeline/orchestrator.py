"""Synchronous orchestration for merging source stores into one destination."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from rich.console import Console

from mailstore_merge.config.settings import AppSettings, MergeSettings, PreconditionError
from mailstore_merge.models.types import Category, Outcome, Scope
from mailstore_merge.pipeline.context import RunContext, RunSummary
from mailstore_merge.pipeline.governor import ResourceGovernor
from mailstore_merge.pipeline.traversal import Traverser
from mailstore_merge.provider.base import (
    ContainerHandle,
    ItemHandle,
    MessageStoreError,
    MessageStoreProvider,
    Session,
    StoreHandle,
    StoreOpenError,
)
from mailstore_merge.stores.accessor import StoreAccessor
from mailstore_merge.stores.classifier import category_of
from mailstore_merge.utils.fingerprint import compute_fingerprint
from mailstore_merge.utils.logging import PERF

logger = logging.getLogger(__name__)

PROGRESS_TOKEN = "PROGRESS:"

ProgressSink = Callable[[int], None]


class MergeOrchestrator:
    """Coordinates traversal, routing, deduplication and moves for a run."""

    def __init__(
        self,
        *,
        settings: AppSettings,
        provider: MessageStoreProvider,
        progress: ProgressSink | None = None,
        console: Console | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Application settings.
            provider: Message store provider to connect through.
            progress: Receives the cumulative moved count at each progress tick.
                Defaults to printing ``PROGRESS:<count>`` on stdout.
            console: Rich console for run banners.
        """
        self._s = settings
        self._provider = provider
        self._console = console or Console(highlight=False, soft_wrap=True)
        self._progress = progress or self._print_progress
        self.context: RunContext | None = None

    def _print_progress(self, moved: int) -> None:
        """Write a machine-parsable progress line."""
        self._console.print(f"{PROGRESS_TOKEN}{moved}", markup=False)

    def run(self) -> RunSummary:
        """Merge every configured source into the destination.

        Returns:
            Summary counters for the run.

        Raises:
            PreconditionError: If merge settings are missing or a source does
                not exist.
            MessageStoreError: If the provider cannot connect.
            StoreOpenError: If the destination store cannot be opened.
        """
        options = self._s.merge
        if options is None:
            raise PreconditionError(
                "Merge settings are missing. Set at least MERGE_MERGE__SOURCES and a destination.",
            )

        mode = "preview" if options.preview else "merge"
        self._console.print(
            f"[bold blue]Merge starting[/bold blue] ({mode}, scope={options.scope.value}, "
            f"skip_duplicates={options.skip_duplicates})",
        )
        self._console.print(f"  [dim]Destination:[/dim] {options.destination_label}")

        started = time.perf_counter()
        session = self._provider.connect()
        try:
            self._check_sources(session, options)

            governor = ResourceGovernor(session=session, settings=self._s.governor)
            accessor = StoreAccessor(session=session, governor=governor)
            ctx = RunContext(session=session, options=options, governor=governor, accessor=accessor)
            self.context = ctx

            try:
                ctx.destination = self._open_destination(accessor, options)
                logger.info("Destination: %s", ctx.destination.display_name)
                for source in options.sources:
                    self._merge_source(ctx, source)
            finally:
                accessor.close_all()
        finally:
            session.close()

        summary = ctx.summary
        logger.log(
            PERF,
            "Run finished in %.1fs (%d items, %d folders visited)",
            time.perf_counter() - started,
            ctx.traversal.items,
            ctx.traversal.containers,
        )
        logger.info(
            "%s %d, skipped duplicates %d, failed %d",
            "Would move" if options.preview else "Moved",
            summary.moved,
            summary.skipped_duplicate,
            summary.failed,
        )
        self._console.print("[bold green]Merge finished![/bold green]")
        return summary

    def _check_sources(self, session: Session, options: MergeSettings) -> None:
        """Fail before touching any store if a source is missing.

        Raises:
            PreconditionError: If a configured source does not exist.
        """
        missing = [source for source in options.sources if not session.store_exists(Path(source))]
        if missing:
            raise PreconditionError(f"Source store(s) not found: {', '.join(missing)}")

    def _open_destination(self, accessor: StoreAccessor, options: MergeSettings) -> StoreHandle:
        """Open or create the destination store.

        Raises:
            StoreOpenError: Naming the destination, whatever the provider raised.
        """
        try:
            return accessor.open_store(options.destination, create_if_missing=True)
        except MessageStoreError as exc:
            raise StoreOpenError(f"Cannot open destination {options.destination_label}: {exc}") from exc

    def _merge_source(self, ctx: RunContext, source: str) -> None:
        """Traverse one source store, processing every item in scope."""
        try:
            store = ctx.accessor.open_store(Path(source), create_if_missing=False)
        except MessageStoreError as exc:
            ctx.summary.sources_failed += 1
            logger.error("Skipping source %s: %s", source, exc)
            return

        logger.info("Merging %s (scope=%s)", store.display_name, ctx.options.scope.value)
        moved_before = ctx.summary.moved
        traverser = Traverser(stats=ctx.traversal)
        try:
            if ctx.options.scope is Scope.inbox:
                inbox = ctx.accessor.resolve_container(store, Category.mail)
                if inbox is None:
                    raise MessageStoreError(f"{store.display_name} has no inbox-equivalent folder")
                traverser.traverse(inbox, lambda item: self.process_item(ctx, item))
            else:
                with ctx.accessor.root_container(store) as root:
                    traverser.traverse(root, lambda item: self.process_item(ctx, item))
            ctx.summary.sources_processed += 1
            logger.info(
                "Finished %s: %d %s",
                store.display_name,
                ctx.summary.moved - moved_before,
                "would move" if ctx.preview else "moved",
            )
        except Exception:
            ctx.summary.sources_failed += 1
            logger.exception("Abandoning source %s", source)
        finally:
            ctx.accessor.close(store, detach=ctx.options.detach_sources)

    def process_item(self, ctx: RunContext, item: ItemHandle) -> Outcome:
        """Classify, route, de-duplicate and move one item.

        Args:
            ctx: Current run context.
            item: Item visited by the traversal.

        Returns:
            The item's Outcome.
        """
        assert ctx.destination is not None
        tag = item.type_tag()
        if not tag.available:
            logger.warning("Cannot classify item, leaving it in place: %s", tag.error)
            ctx.summary.record(Outcome.failed)
            return Outcome.failed

        category = category_of(tag.text())
        target = ctx.accessor.resolve_container(ctx.destination, category)
        check_duplicates = ctx.options.skip_duplicates
        if target is None:
            target = ctx.accessor.resolve_container(ctx.destination, Category.mail)
            if target is None:
                logger.warning(
                    "No destination folder for %s (%s); leaving it in place",
                    item.describe(),
                    category.value,
                )
                ctx.summary.record(Outcome.failed)
                return Outcome.failed
            if check_duplicates:
                logger.debug("Duplicate check skipped for %s (fallback routing)", category.value)
            check_duplicates = False

        fingerprint: str | None = None
        if check_duplicates:
            fingerprint = compute_fingerprint(item, category)
            ctx.dedup.ensure_built(target)
            if ctx.dedup.contains(target.key, fingerprint):
                logger.debug("Skipping duplicate %s in %s", item.describe(), target.name)
                ctx.summary.record(Outcome.skipped_duplicate)
                return Outcome.skipped_duplicate

        if not self._move(ctx, item, target):
            ctx.summary.record(Outcome.failed)
            return Outcome.failed

        ctx.summary.record(Outcome.moved, category)
        if fingerprint is not None:
            ctx.dedup.insert(target.key, fingerprint)
        self._after_move(ctx)
        return Outcome.moved

    def _move(self, ctx: RunContext, item: ItemHandle, target: ContainerHandle) -> bool:
        """Move the item, or only report the intent in preview mode."""
        if ctx.preview:
            logger.info("Would move %s -> %s", item.describe(), target.name)
            return True
        description = item.describe() if logger.isEnabledFor(logging.DEBUG) else ""
        try:
            item.move_to(target)
        except Exception as exc:
            logger.warning("Move failed for %s -> %s: %s", item.describe(), target.name, exc)
            return False
        logger.debug("Moved %s -> %s", description, target.name)
        return True

    def _after_move(self, ctx: RunContext) -> None:
        """Emit progress and run governor cadences for the new moved count."""
        moved = ctx.summary.moved
        if moved % self._s.governor.progress_every == 0:
            try:
                self._progress(moved)
            except Exception:
                pass
        ctx.governor.after_move(moved)

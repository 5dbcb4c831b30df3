"""Typer CLI for the message store merge tool."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from mailstore_merge.config.settings import AppSettings, PreconditionError, load_settings
from mailstore_merge.models.types import Category, Scope, SummaryReport
from mailstore_merge.pipeline.orchestrator import MergeOrchestrator
from mailstore_merge.provider.base import MessageStoreError
from mailstore_merge.provider.outlook import OutlookProvider
from mailstore_merge.utils.logging import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Merge items from several message stores into one, routed by item type.",
)


def build_overrides(
    *,
    sources: list[str] | None,
    destination: Path | None,
    default_store: bool | None,
    scope: Scope | None,
    preview: bool | None,
    detach: bool | None,
    skip_duplicates: bool | None,
    reclaim_every: int | None,
    monitor: bool | None,
    monitor_every: int | None,
    progress_every: int | None,
    verbose: bool | None,
    log_file: Path | None,
    append: bool | None,
) -> dict[str, Any]:
    """Collect explicitly given CLI values into nested settings overrides.

    Returns:
        Mapping suitable for ``load_settings(overrides=...)``.
    """
    groups: dict[str, dict[str, Any]] = {
        "merge": {
            "sources": sources or None,
            "destination": destination,
            "use_default_store": default_store,
            "scope": scope,
            "preview": preview,
            "detach_sources": detach,
            "skip_duplicates": skip_duplicates,
        },
        "governor": {
            "reclaim_every": reclaim_every,
            "monitor": monitor,
            "monitor_every": monitor_every,
            "progress_every": progress_every,
        },
        "logging": {
            "verbose": verbose,
            "file": log_file,
            "append": append,
        },
    }
    overrides: dict[str, Any] = {}
    for group, values in groups.items():
        given = {key: value for key, value in values.items() if value is not None}
        if given:
            overrides[group] = given
    return overrides


def render_summary(console: Console, report: SummaryReport) -> None:
    """Print the run summary as a table.

    Args:
        console: Output console.
        report: Summary to render.
    """
    verb = "Would move" if report.preview else "Moved"
    table = Table(title=f"Merge summary → {report.destination}")
    table.add_column("Counter")
    table.add_column("Items", justify="right")
    table.add_row(verb, str(report.moved))
    table.add_row("Skipped duplicates", str(report.skipped_duplicate))
    table.add_row("Failed", str(report.failed))
    table.add_row("Sources processed", str(report.sources_processed))
    table.add_row("Sources failed", str(report.sources_failed))
    for category in Category:
        table.add_row(f"  {category.value}", str(report.moved_by_category.get(category.value, 0)))
    console.print(table)


@app.command("merge")
def merge_cmd(
    *,
    env_file: Path | None = typer.Option(
        default=None,
        exists=True,
        dir_okay=False,
        help="Optional path to a .env file (in addition to environment variables).",
    ),
    sources: list[str] | None = typer.Option(
        None,
        "--source",
        "-s",
        help="Source store path; repeat for several sources.",
    ),
    destination: Path | None = typer.Option(
        None,
        "--dest",
        help="Destination store path (created if missing).",
    ),
    default_store: bool | None = typer.Option(
        None,
        "--default-store/--no-default-store",
        help="Merge into the profile's default mailbox instead of a store file.",
    ),
    scope: Scope | None = typer.Option(None, help="Traverse only the inbox or all folders."),
    preview: bool | None = typer.Option(
        None,
        "--preview/--no-preview",
        help="Report intended moves without changing any store.",
    ),
    detach: bool | None = typer.Option(
        None,
        "--detach-sources/--keep-sources",
        help="Detach each source store after it has been merged.",
    ),
    skip_duplicates: bool | None = typer.Option(
        None,
        "--skip-duplicates/--allow-duplicates",
        help="Leave items whose fingerprint already exists in the destination folder.",
    ),
    reclaim_every: int | None = typer.Option(
        None,
        min=0,
        help="Force resource reclamation every N moved items (0 disables).",
    ),
    monitor: bool | None = typer.Option(None, "--monitor/--no-monitor", help="Report memory use."),
    monitor_every: int | None = typer.Option(None, min=1, help="Memory report cadence in moved items."),
    progress_every: int | None = typer.Option(None, min=1, help="Progress line cadence in moved items."),
    verbose: bool | None = typer.Option(None, "--verbose/--quiet", "-v", help="Enable DEBUG logging."),
    log_file: Path | None = typer.Option(None, dir_okay=False, help="Mirror log output to this file."),
    append: bool | None = typer.Option(
        None,
        "--append-log/--truncate-log",
        help="Append to the log file instead of truncating it.",
    ),
    report: Path | None = typer.Option(
        None,
        dir_okay=False,
        help="Write the run summary as JSON to this path.",
    ),
) -> None:
    """Merge source stores into the destination store.

    Args:
        env_file: Optional path to a .env file to load configuration from.
        sources: Source store paths.
        destination: Destination store path.
        default_store: Whether to merge into the default mailbox.
        scope: Traversal scope.
        preview: Whether to only report intended moves.
        detach: Whether to detach sources afterwards.
        skip_duplicates: Whether to skip items already in the destination.
        reclaim_every: Reclamation cadence.
        monitor: Whether to report memory use.
        monitor_every: Memory report cadence.
        progress_every: Progress line cadence.
        verbose: Whether to log at DEBUG.
        log_file: Optional log file.
        append: Append to rather than truncate the log file.
        report: Optional JSON summary output path.
    """
    overrides = build_overrides(
        sources=sources,
        destination=destination,
        default_store=default_store,
        scope=scope,
        preview=preview,
        detach=detach,
        skip_duplicates=skip_duplicates,
        reclaim_every=reclaim_every,
        monitor=monitor,
        monitor_every=monitor_every,
        progress_every=progress_every,
        verbose=verbose,
        log_file=log_file,
        append=append,
    )
    try:
        settings: AppSettings = load_settings(env_file=env_file, overrides=overrides)
    except ValidationError as exc:
        typer.echo(f"Invalid configuration:\n{exc}", err=True)
        raise typer.Exit(code=2) from None

    configure_logging(settings=settings.logging)

    if settings.merge is None:
        typer.echo(
            "Missing merge settings. Pass --source and --dest/--default-store "
            "or set MERGE_MERGE__SOURCES.",
            err=True,
        )
        raise typer.Exit(code=2)

    console = Console(highlight=False, soft_wrap=True)
    orchestrator = MergeOrchestrator(settings=settings, provider=OutlookProvider(), console=console)
    try:
        summary = orchestrator.run()
    except PreconditionError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=2) from None
    except MessageStoreError as exc:
        logger.error("Merge aborted: %s", exc)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None

    summary_report = summary.to_report(
        destination=settings.merge.destination_label,
        preview=settings.merge.preview,
    )
    render_summary(console, summary_report)
    if report is not None:
        report.parent.mkdir(parents=True, exist_ok=True)
        report.write_text(summary_report.model_dump_json(indent=2), encoding="utf-8")
        typer.echo(f"Wrote {report}")

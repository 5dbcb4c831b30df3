"""Shared fixtures: an instrumented in-process provider and a sample source tree."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from memory_provider import InMemoryProvider, MemoryStore

from mailstore_merge.config.settings import AppSettings
from mailstore_merge.models.types import Category

SAMPLE_ITEM_COUNT = 13
SAMPLE_FOLDER_COUNT = 9


def build_source(provider: InMemoryProvider, path: str) -> MemoryStore:
    """Create a source store with items in every category.

    Layout (13 items, 9 folders including the root)::

        Inbox (3 mail) / Project (2 mail)
        Calendar (2 appointments)
        Contacts (1), Tasks (1), Notes (1), Journal (1)
        Archive (1 mail, 1 appointment)
    """
    store = provider.add_store(path)
    inbox = store.defaults[Category.mail]
    for n in range(3):
        inbox.add_item(
            "IPM.Note",
            subject=f"Status report {n}",
            sent_on=datetime(2024, 3, 1, 9, n, 30, tzinfo=UTC),
            sender_address="boss@example.com",
            size=1000 + n,
        )
    project = inbox.add_folder("Project")
    project.add_item("IPM.Note", subject="Kickoff", sender_address="pm@example.com", size=500)
    project.add_item("IPM.Note.SMIME", subject="Signed plan", sender_address="pm@example.com", size=900)

    calendar = store.defaults[Category.appointment]
    calendar.add_item(
        "IPM.Appointment",
        subject="Standup",
        start=datetime(2024, 3, 4, 9, 0, tzinfo=UTC),
        duration=15,
        location="Room 1",
    )
    calendar.add_item(
        "IPM.Appointment",
        subject="Review",
        start=datetime(2024, 3, 5, 14, 0, tzinfo=UTC),
        duration=60,
        location="Room 2",
    )
    store.defaults[Category.contact].add_item(
        "IPM.Contact",
        full_name="Ada Lovelace",
        company="Analytical Engines",
        email1="ada@example.com",
    )
    store.defaults[Category.task].add_item(
        "IPM.Task",
        subject="File taxes",
        due=datetime(2024, 4, 15, tzinfo=UTC),
        percent_complete=25,
    )
    store.defaults[Category.note].add_item("IPM.StickyNote", body="Remember the milk")
    store.defaults[Category.journal].add_item(
        "IPM.Activity",
        subject="Phone call",
        start=datetime(2024, 3, 6, 10, 0, tzinfo=UTC),
    )

    archive = store.root.add_folder("Archive")
    archive.add_item("IPM.Note", subject="Old newsletter", sender_address="news@example.com", size=42)
    archive.add_item(
        "IPM.Appointment",
        subject="Offsite",
        start=datetime(2023, 9, 1, 8, 0, tzinfo=UTC),
        duration=480,
        location="Lake house",
    )
    return store


def make_settings(**merge: Any) -> AppSettings:
    """Build settings with the given merge options and tight cadences."""
    governor = merge.pop("governor", {})
    return AppSettings(merge=merge, governor=governor)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep ambient MERGE_* variables and .env files out of tests."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("MERGE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def provider() -> InMemoryProvider:
    """Return a fresh in-process provider."""
    return InMemoryProvider()


@pytest.fixture
def dest_path(tmp_path: Path) -> Path:
    """Return an absolute destination store path."""
    return (tmp_path / "merged.pst").resolve()

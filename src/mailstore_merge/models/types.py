"""Shared enums and lightweight Pydantic models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from mailstore_merge.models.base import AppModel


class Category(StrEnum):
    """Canonical item categories used for routing and reporting."""

    appointment = "appointment"
    contact = "contact"
    task = "task"
    note = "note"
    journal = "journal"
    mail = "mail"
    other = "other"


class Scope(StrEnum):
    """How much of each source store is traversed."""

    inbox = "inbox"
    all = "all"


class Outcome(StrEnum):
    """Result of processing one visited item."""

    moved = "moved"
    skipped_duplicate = "skipped_duplicate"
    failed = "failed"


class ItemField(StrEnum):
    """Item attributes readable through a provider."""

    message_class = "message_class"
    subject = "subject"
    body = "body"
    start = "start"
    due = "due"
    duration = "duration"
    location = "location"
    percent_complete = "percent_complete"
    full_name = "full_name"
    company = "company"
    email1 = "email1"
    email2 = "email2"
    email3 = "email3"
    sent_on = "sent_on"
    sender_address = "sender_address"
    size = "size"


class SummaryReport(AppModel):
    """Summarized merge report emitted by the CLI."""

    created_at: datetime
    destination: str
    preview: bool = False
    moved: int = Field(default=0, ge=0)
    skipped_duplicate: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    sources_processed: int = Field(default=0, ge=0)
    sources_failed: int = Field(default=0, ge=0)
    moved_by_category: dict[str, int] = Field(default_factory=dict)


"""Validated domain models (Pydantic)."""

from __future__ import annotations

from mailstore_merge.models.types import (
    Category,
    ItemField,
    Outcome,
    Scope,
    SummaryReport,
)

__all__ = [
    "Category",
    "ItemField",
    "Outcome",
    "Scope",
    "SummaryReport",
]

"""Item type tag classification."""

from __future__ import annotations

from mailstore_merge.models.types import Category

# Ordered; the first matching prefix wins. Request/response forms of tasks
# are messages and must be listed before the task prefix.
TYPE_TAG_PREFIXES: tuple[tuple[str, Category], ...] = (
    ("ipm.appointment", Category.appointment),
    ("ipm.contact", Category.contact),
    ("ipm.distlist", Category.contact),
    ("ipm.taskrequest", Category.mail),
    ("ipm.task", Category.task),
    ("ipm.stickynote", Category.note),
    ("ipm.activity", Category.journal),
)

# Categories that share the inbox-equivalent container.
INBOX_CATEGORIES: frozenset[Category] = frozenset({Category.mail, Category.other})


def category_of(type_tag: str | None) -> Category:
    """Map an item type tag to its canonical category.

    Matching is a case-insensitive prefix test against ``TYPE_TAG_PREFIXES``.
    Anything unmatched, including a blank tag, is mail.

    Args:
        type_tag: Free-form item class string, e.g. ``IPM.Appointment``.

    Returns:
        The item's Category.
    """
    if not type_tag:
        return Category.mail
    lowered = type_tag.strip().lower()
    for prefix, category in TYPE_TAG_PREFIXES:
        if lowered.startswith(prefix):
            return category
    return Category.mail


def routing_category(category: Category) -> Category:
    """Return the category whose default container receives ``category``."""
    return Category.mail if category in INBOX_CATEGORIES else category

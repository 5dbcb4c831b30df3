"""Item fingerprinting for duplicate detection."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from mailstore_merge.models.types import Category, ItemField
from mailstore_merge.provider.base import FieldRead, ItemHandle

FIELD_SEPARATOR = "|"
NOTE_BODY_CHARS = 50

_TICK_EPOCH = datetime(1, 1, 1, tzinfo=UTC)
_TICKS_PER_MICROSECOND = 10
# Message stores encode "no date" as 4501-01-01.
_NULL_DATE_YEAR = 4501

Normalizer = Callable[[FieldRead], str]


def normalize_text(read: FieldRead) -> str:
    """Return case-folded, trimmed text, or an empty string."""
    return read.text().strip().casefold()


def normalize_int(read: FieldRead) -> str:
    """Return the value as an integer string, or an empty string."""
    if not read.available or isinstance(read.value, bool):
        return ""
    if isinstance(read.value, int):
        return str(read.value)
    try:
        return str(int(float(str(read.value))))
    except (TypeError, ValueError, OverflowError):
        return ""


def _as_datetime(value: object) -> datetime | None:
    """Coerce a raw field value to a datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def minute_ticks(value: datetime) -> int:
    """Round a timestamp down to the minute and express it as 100ns ticks.

    Naive timestamps are taken to be UTC; aware ones are converted to UTC.

    Args:
        value: Timestamp to convert.

    Returns:
        Ticks since 0001-01-01T00:00:00Z.
    """
    dt = value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    dt = dt.replace(second=0, microsecond=0)
    return (dt - _TICK_EPOCH) // timedelta(microseconds=1) * _TICKS_PER_MICROSECOND


def normalize_time(read: FieldRead) -> str:
    """Return a minute-rounded tick count, or an empty string."""
    if not read.available:
        return ""
    dt = _as_datetime(read.value)
    if dt is None or dt.year >= _NULL_DATE_YEAR:
        return ""
    try:
        return str(minute_ticks(dt))
    except (OverflowError, ValueError):
        return ""


FINGERPRINT_FIELDS: dict[Category, tuple[tuple[ItemField, Normalizer], ...]] = {
    Category.appointment: (
        (ItemField.subject, normalize_text),
        (ItemField.start, normalize_time),
        (ItemField.duration, normalize_int),
        (ItemField.location, normalize_text),
    ),
    Category.contact: (
        (ItemField.full_name, normalize_text),
        (ItemField.company, normalize_text),
        (ItemField.email1, normalize_text),
        (ItemField.email2, normalize_text),
        (ItemField.email3, normalize_text),
    ),
    Category.task: (
        (ItemField.subject, normalize_text),
        (ItemField.start, normalize_time),
        (ItemField.due, normalize_time),
        (ItemField.percent_complete, normalize_int),
    ),
    Category.journal: (
        (ItemField.subject, normalize_text),
        (ItemField.start, normalize_time),
    ),
    Category.mail: (
        (ItemField.subject, normalize_text),
        (ItemField.sent_on, normalize_time),
        (ItemField.sender_address, normalize_text),
        (ItemField.size, normalize_int),
    ),
}


def _note_key(item: ItemHandle) -> str:
    """Return the note subject, falling back to the start of the body."""
    subject = normalize_text(item.read(ItemField.subject))
    if subject:
        return subject
    body = item.read(ItemField.body).text()
    return body[:NOTE_BODY_CHARS].strip().casefold()


def compute_fingerprint(item: ItemHandle, category: Category) -> str:
    """Compute the normalized signature of an item.

    The result is ``<category>|<field1>|<field2>|...`` using the category's
    fixed field order. Unreadable fields contribute an empty segment.

    Args:
        item: Item to fingerprint.
        category: The item's classified category.

    Returns:
        Fingerprint string.
    """
    if category is Category.note:
        return FIELD_SEPARATOR.join([category.value, _note_key(item)])

    table = FINGERPRINT_FIELDS.get(category, FINGERPRINT_FIELDS[Category.mail])
    parts = [category.value]
    for field, normalize in table:
        parts.append(normalize(item.read(field)))
    return FIELD_SEPARATOR.join(parts)

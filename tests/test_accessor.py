"""Tests for store opening and container caching."""

from __future__ import annotations

from pathlib import Path

import pytest
from memory_provider import InMemoryProvider

from mailstore_merge.config.settings import GovernorSettings
from mailstore_merge.models.types import Category
from mailstore_merge.pipeline.governor import ResourceGovernor
from mailstore_merge.provider.base import Session, StoreNotFoundError
from mailstore_merge.stores.accessor import StoreAccessor


def _accessor(provider: InMemoryProvider) -> tuple[Session, StoreAccessor, ResourceGovernor]:
    session = provider.connect()
    governor = ResourceGovernor(session=session, settings=GovernorSettings())
    return session, StoreAccessor(session=session, governor=governor), governor


def test_containers_are_cached_per_store_and_category(provider: InMemoryProvider) -> None:
    """Repeated lookups should return the same handle; Mail and Other share one."""
    provider.add_store("dest.pst")
    _, accessor, governor = _accessor(provider)
    store = accessor.open_store(Path("dest.pst"), create_if_missing=True)

    calendar = accessor.resolve_container(store, Category.appointment)
    assert calendar is accessor.resolve_container(store, Category.appointment)
    assert accessor.resolve_container(store, Category.other) is accessor.resolve_container(
        store,
        Category.mail,
    )
    assert provider.stats.live_containers == 2
    assert governor.live_handles == 3

    accessor.close_all()
    assert provider.stats.live_containers == 0
    assert governor.live_handles == 0


def test_missing_source_store_is_not_created(provider: InMemoryProvider) -> None:
    """Sources must already exist; destinations are created on demand."""
    _, accessor, _ = _accessor(provider)
    with pytest.raises(StoreNotFoundError):
        accessor.open_store(Path("missing.pst"), create_if_missing=False)
    assert "missing.pst" not in provider.stores

    accessor.open_store(Path("new.pst"), create_if_missing=True)
    assert "new.pst" in provider.stores


def test_session_fallback_used_for_same_store(provider: InMemoryProvider) -> None:
    """Without store-scoped lookup, the session default is used if it is this store."""
    mailbox = provider.add_store("mailbox", default=True)
    mailbox.store_scoped_defaults = False
    _, accessor, _ = _accessor(provider)
    store = accessor.open_store(None, create_if_missing=True)

    tasks = accessor.resolve_container(store, Category.task)
    assert tasks is not None
    assert tasks.key.entry_id == mailbox.defaults[Category.task].entry_id


def test_session_fallback_rejected_for_other_store(provider: InMemoryProvider) -> None:
    """A session default from a different store must not be used."""
    provider.add_store("mailbox", default=True)
    archive = provider.add_store("archive.pst")
    archive.store_scoped_defaults = False
    _, accessor, _ = _accessor(provider)
    store = accessor.open_store(Path("archive.pst"), create_if_missing=False)

    assert accessor.resolve_container(store, Category.note) is None
    assert accessor.resolve_container(store, Category.note) is None
    assert provider.stats.live_containers == 0

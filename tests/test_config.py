from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from lodging.domain.catalog import RoomCatalog, validate_room
from lodging.domain.models import Room, RoomKind
from lodging.utils.config import get_settings, validate_settings


def test_settings_read_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("LODGING_DATABASE_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("BUSINESS_DAY_CUTOFF_HOUR", "5")
    monkeypatch.setenv("FEED_SKIP_PAST_EVENTS", "no")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.database_path == Path(tmp_path / "env.db")
        assert settings.business_day_cutoff_hour == 5
        assert settings.feed_skip_past_events is False
        assert settings.allocation_max_write_attempts == 3
    finally:
        get_settings.cache_clear()


def test_invalid_settings_are_rejected():
    base = get_settings()

    with pytest.raises(ValueError, match="cutoff"):
        validate_settings(replace(base, business_day_cutoff_hour=24))
    with pytest.raises(ValueError, match="allocation_max_write_attempts"):
        validate_settings(replace(base, allocation_max_write_attempts=0))
    with pytest.raises(ValueError, match="feed_sync_max_workers"):
        validate_settings(replace(base, feed_sync_max_workers=0))


def test_room_configuration_rules():
    validate_room(Room("pueblo_dorm_mixed_8", "pueblo", RoomKind.DORM, 8, 8))

    with pytest.raises(ValueError, match="capacity_beds == 1"):
        validate_room(Room("pueblo_private_1", "pueblo", RoomKind.PRIVATE, 2, 2))
    with pytest.raises(ValueError, match="capacity_beds must be >= 1"):
        validate_room(Room("pueblo_dorm_empty", "pueblo", RoomKind.DORM, 0, 1))
    with pytest.raises(ValueError, match="location"):
        validate_room(Room("pueblo_private_1", " ", RoomKind.PRIVATE, 1, 2))


def test_catalog_rejects_duplicate_ids_and_filters_by_location():
    rooms = [
        Room("pueblo_private_1", "pueblo", RoomKind.PRIVATE, 1, 2),
        Room("hideout_private_1", "hideout", RoomKind.PRIVATE, 1, 2, external_feed_url="https://feeds.test/h1.ics"),
    ]
    catalog = RoomCatalog(rooms)

    assert len(catalog) == 2
    assert "pueblo_private_1" in catalog
    assert [room.id for room in catalog.list_rooms("Hideout")] == ["hideout_private_1"]
    assert [room.id for room in catalog.rooms_with_feeds()] == ["hideout_private_1"]
    assert catalog.get(None) is None

    with pytest.raises(ValueError, match="duplicate"):
        RoomCatalog(rooms + [rooms[0]])

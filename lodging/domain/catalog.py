"""Room catalog snapshot and configuration rules."""

from __future__ import annotations

from typing import Iterable, Optional

from lodging.domain.models import Room, RoomKind


def validate_room(room: Room) -> None:
    if not room.id.strip():
        raise ValueError("room id must not be empty")
    if not room.location.strip():
        raise ValueError(f"room {room.id} must have a location")
    if room.capacity_beds < 1:
        raise ValueError(f"room {room.id} capacity_beds must be >= 1")
    if room.max_guests < 1:
        raise ValueError(f"room {room.id} max_guests must be >= 1")
    if room.kind is RoomKind.PRIVATE and room.capacity_beds != 1:
        raise ValueError(f"private room {room.id} must have capacity_beds == 1")


class RoomCatalog:
    """Read-only view over the configured rooms, keyed by canonical id."""

    def __init__(self, rooms: Iterable[Room]) -> None:
        self._rooms: dict[str, Room] = {}
        for room in rooms:
            validate_room(room)
            if room.id in self._rooms:
                raise ValueError(f"duplicate room id {room.id}")
            self._rooms[room.id] = room

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def get(self, room_id: Optional[str]) -> Optional[Room]:
        if room_id is None:
            return None
        return self._rooms.get(room_id)

    def ids(self) -> list[str]:
        return sorted(self._rooms)

    def list_rooms(self, location: Optional[str] = None) -> list[Room]:
        rooms = sorted(self._rooms.values(), key=lambda room: room.id)
        if location is None:
            return rooms
        wanted = location.strip().lower()
        return [room for room in rooms if room.location.lower() == wanted]

    def rooms_with_feeds(self) -> list[Room]:
        return [room for room in self.list_rooms() if room.external_feed_url]

"""Canonical room identity resolution for legacy and free-text room strings.

Bookings arrive with room strings from staff input, historical imports and
channel-manager feeds. The resolver maps them onto catalog ids through an
exact match first and a versioned per-location alias table second. Anything
else is reported as ``UnresolvedRoom``; it is never coerced to a default room.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union

from lodging.domain.catalog import RoomCatalog
from lodging.domain.models import UnresolvedRoom
from lodging.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_ALIAS_TABLE_PATH = Path(__file__).resolve().parents[1] / "data" / "room_aliases.json"

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")


def normalize_room_token(raw_type: Optional[str]) -> str:
    return _NON_ALPHANUMERIC.sub("", (raw_type or "").lower())


def normalize_location(raw_location: Optional[str]) -> str:
    return (raw_location or "").strip().lower()


@dataclass(frozen=True)
class AliasTable:
    version: int
    aliases: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> "AliasTable":
        version = payload.get("version")
        if not isinstance(version, int) or version < 1:
            raise ValueError("alias table version must be a positive integer")
        locations = payload.get("locations", {})
        if not isinstance(locations, dict):
            raise ValueError("alias table 'locations' must be an object")

        aliases: dict[str, dict[str, str]] = {}
        for location, mapping in locations.items():
            if not isinstance(mapping, dict):
                raise ValueError(f"aliases for location '{location}' must be an object")
            normalized: dict[str, str] = {}
            for token, room_id in mapping.items():
                key = normalize_room_token(token)
                if not key:
                    raise ValueError(f"alias '{token}' normalizes to an empty token")
                previous = normalized.get(key)
                if previous is not None and previous != room_id:
                    raise ValueError(
                        f"alias '{token}' at '{location}' maps to both {previous} and {room_id}"
                    )
                normalized[key] = str(room_id)
            aliases[normalize_location(location)] = normalized
        return cls(version=version, aliases=aliases)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AliasTable":
        source = path or DEFAULT_ALIAS_TABLE_PATH
        with open(source, encoding="utf-8") as handle:
            payload = json.load(handle)
        table = cls.from_dict(payload)
        logger.info("Room alias table loaded | path=%s | version=%s", source, table.version)
        return table

    def lookup(self, location: str, token: str) -> Optional[str]:
        return self.aliases.get(location, {}).get(token)


class RoomResolver:
    """Pure function object over a catalog and alias table snapshot."""

    def __init__(self, catalog: RoomCatalog, alias_table: AliasTable) -> None:
        self._catalog = catalog
        self._alias_table = alias_table
        self._ids_by_token = {normalize_room_token(room_id): room_id for room_id in catalog.ids()}
        for location, mapping in alias_table.aliases.items():
            for token, room_id in mapping.items():
                if room_id not in catalog:
                    logger.warning(
                        "Alias points at unknown room | location=%s | alias=%s | room_id=%s",
                        location,
                        token,
                        room_id,
                    )

    @property
    def alias_table_version(self) -> int:
        return self._alias_table.version

    def resolve(self, raw_type: Optional[str], raw_location: Optional[str]) -> Union[str, UnresolvedRoom]:
        unresolved = UnresolvedRoom(raw_type=raw_type or "", raw_location=raw_location or "")
        if raw_type is None:
            return unresolved

        candidate = raw_type.strip()
        if candidate in self._catalog:
            return candidate

        token = normalize_room_token(raw_type)
        if not token:
            return unresolved

        room_id = self._ids_by_token.get(token)
        if room_id is not None:
            return room_id

        room_id = self._alias_table.lookup(normalize_location(raw_location), token)
        if room_id is not None and room_id in self._catalog:
            return room_id
        return unresolved

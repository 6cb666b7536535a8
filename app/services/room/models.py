"""Room and player domain models.

A room is a single document: its players are embedded in join order and have
no existence outside it. ``to_document``/``from_document`` convert to and from
the flat, JSON-safe shape the stores persist.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

DEFAULT_MAX_PLAYERS = 10
DEFAULT_MIN_PLAYERS = 5


class RoomStatus(str, Enum):
    """Lifecycle status of a room."""

    WAITING = "waiting"
    READY = "ready"
    STARTING = "starting"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    FINISHED = "finished"
    CANCELLED = "cancelled"


# Statuses in which the lobby is open: joins, kicks and deletion are allowed.
OPEN_STATUSES = frozenset({RoomStatus.WAITING, RoomStatus.READY})

STATUS_TRANSITIONS: dict[RoomStatus, frozenset[RoomStatus]] = {
    RoomStatus.WAITING: frozenset({RoomStatus.READY, RoomStatus.STARTING, RoomStatus.CANCELLED}),
    RoomStatus.READY: frozenset({RoomStatus.WAITING, RoomStatus.STARTING, RoomStatus.CANCELLED}),
    RoomStatus.STARTING: frozenset({RoomStatus.IN_PROGRESS, RoomStatus.CANCELLED}),
    RoomStatus.IN_PROGRESS: frozenset({RoomStatus.PAUSED, RoomStatus.FINISHED}),
    RoomStatus.PAUSED: frozenset({RoomStatus.IN_PROGRESS, RoomStatus.FINISHED}),
    RoomStatus.FINISHED: frozenset(),
    RoomStatus.CANCELLED: frozenset(),
}


def is_valid_transition(current: RoomStatus, target: RoomStatus) -> bool:
    return target in STATUS_TRANSITIONS[current]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PlayerProfile:
    """Identity of a player as supplied by the identity provider."""

    id: str
    display_name: str | None = None
    email: str | None = None
    photo_url: str | None = None
    is_anonymous: bool = False


@dataclass
class Player:
    """A member of a room."""

    id: str
    name: str
    joined_at: datetime
    is_host: bool = False
    is_ready: bool = False
    display_name: str | None = None
    email: str | None = None
    photo_url: str | None = None
    is_anonymous: bool = False

    @classmethod
    def from_profile(
        cls,
        profile: PlayerProfile,
        name: str,
        joined_at: datetime,
        is_host: bool = False,
    ) -> "Player":
        return cls(
            id=profile.id,
            name=name,
            joined_at=joined_at,
            is_host=is_host,
            is_ready=False,
            display_name=profile.display_name,
            email=profile.email,
            photo_url=profile.photo_url,
            is_anonymous=profile.is_anonymous,
        )

    def refreshed(self, profile: PlayerProfile, name: str) -> "Player":
        """Return a copy with name and provider fields refreshed.

        ``is_ready``, ``is_host`` and ``joined_at`` are kept.
        """
        return replace(
            self,
            name=name,
            display_name=profile.display_name,
            email=profile.email,
            photo_url=profile.photo_url,
            is_anonymous=profile.is_anonymous,
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "is_host": self.is_host,
            "is_ready": self.is_ready,
            "joined_at": self.joined_at.isoformat(),
            "is_anonymous": self.is_anonymous,
        }
        if self.display_name is not None:
            doc["display_name"] = self.display_name
        if self.email is not None:
            doc["email"] = self.email
        if self.photo_url is not None:
            doc["photo_url"] = self.photo_url
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Player":
        return cls(
            id=str(doc["id"]),
            name=str(doc["name"]),
            joined_at=datetime.fromisoformat(doc["joined_at"]),
            is_host=bool(doc.get("is_host", False)),
            is_ready=bool(doc.get("is_ready", False)),
            display_name=doc.get("display_name"),
            email=doc.get("email"),
            photo_url=doc.get("photo_url"),
            is_anonymous=bool(doc.get("is_anonymous", False)),
        )


@dataclass
class RoomSettings:
    """Per-room game settings."""

    allow_spectators: bool = True
    chat_enabled: bool = True
    time_limit: int = 60  # seconds per turn
    difficulty_level: str = "normal"

    def merged(self, overrides: dict[str, Any] | None) -> "RoomSettings":
        if not overrides:
            return replace(self)
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_document(self) -> dict[str, Any]:
        return {
            "allow_spectators": self.allow_spectators,
            "chat_enabled": self.chat_enabled,
            "time_limit": self.time_limit,
            "difficulty_level": self.difficulty_level,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "RoomSettings":
        return cls(
            allow_spectators=bool(doc.get("allow_spectators", True)),
            chat_enabled=bool(doc.get("chat_enabled", True)),
            time_limit=int(doc.get("time_limit", 60)),
            difficulty_level=str(doc.get("difficulty_level", "normal")),
        )


@dataclass
class Room:
    """Complete room document."""

    id: str
    name: str
    host_id: str
    game_code: str
    created_at: datetime
    players: list[Player] = field(default_factory=list)
    max_players: int = DEFAULT_MAX_PLAYERS
    min_players: int = DEFAULT_MIN_PLAYERS
    status: RoomStatus = RoomStatus.WAITING
    settings: RoomSettings = field(default_factory=RoomSettings)
    version: int = 0

    def get_player(self, player_id: str) -> Player | None:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def has_player(self, player_id: str) -> bool:
        return self.get_player(player_id) is not None

    @property
    def host(self) -> Player | None:
        for player in self.players:
            if player.is_host:
                return player
        return None

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    @property
    def has_quorum(self) -> bool:
        return len(self.players) >= self.min_players

    @property
    def all_ready(self) -> bool:
        return all(player.is_ready for player in self.players)

    @property
    def can_start(self) -> bool:
        return self.has_quorum and self.all_ready

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "host_id": self.host_id,
            "players": [player.to_document() for player in self.players],
            "max_players": self.max_players,
            "min_players": self.min_players,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "game_code": self.game_code,
            "settings": self.settings.to_document(),
            "version": self.version,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Room":
        return cls(
            id=str(doc["id"]),
            name=str(doc["name"]),
            host_id=str(doc["host_id"]),
            game_code=str(doc["game_code"]),
            created_at=datetime.fromisoformat(doc["created_at"]),
            players=[Player.from_document(p) for p in doc.get("players", [])],
            max_players=int(doc.get("max_players", DEFAULT_MAX_PLAYERS)),
            min_players=int(doc.get("min_players", DEFAULT_MIN_PLAYERS)),
            status=RoomStatus(doc.get("status", RoomStatus.WAITING.value)),
            settings=RoomSettings.from_document(doc.get("settings") or {}),
            version=int(doc.get("version", 0)),
        )

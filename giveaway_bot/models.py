"""Data models used for giveaway persistence and runtime state."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import List, Optional

from .ids import format_giveaway_id


@dataclass(slots=True, eq=False)
class Giveaway:
    """A giveaway along with its entrants, winners and rendered message references.

    Instances are compared by identity: the store, the tracker and the command
    handlers share the same object for a given id.
    """
    id: uuid.UUID
    guild_id: int
    channel_id: int
    creator_id: int
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    winner_count: int
    image_uri: Optional[str] = None
    entrants: List[int] = field(default_factory=list)
    winner_ids: List[int] = field(default_factory=list)
    end_handled: bool = False
    message_id: int = 0
    log_message_id: int = 0

    @property
    def short_id(self) -> str:
        return format_giveaway_id(self.id)

    def has_entrant(self, user_id: int) -> bool:
        return user_id in self.entrants

    def add_entrant(self, user_id: int) -> bool:
        """Add an entrant if they have not already joined."""
        if user_id in self.entrants:
            return False
        self.entrants.append(user_id)
        return True

    def remove_entrant(self, user_id: int) -> bool:
        """Remove an entrant if present."""
        if user_id not in self.entrants:
            return False
        self.entrants.remove(user_id)
        return True

    def has_expired(self, now: Optional[datetime] = None) -> bool:
        return self.end_time <= (now or datetime.now(tz=UTC))


@dataclass(slots=True)
class GiveawayCreationOptions:
    """Parameters collected by the command surface when creating a giveaway."""
    guild_id: int
    channel_id: int
    creator_id: int
    title: str
    description: str
    winner_count: int
    end_time: datetime
    image_uri: Optional[str] = None
    start_time: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ExcludedRole:
    """A role whose holders cannot win giveaways in a guild."""
    guild_id: int
    role_id: int
    reason: Optional[str] = field(default=None, compare=False)
    staff_member_id: int = field(default=0, compare=False)

    @property
    def target_id(self) -> int:
        return self.role_id


@dataclass(frozen=True, slots=True)
class ExcludedUser:
    """A user who cannot win giveaways in a guild."""
    guild_id: int
    user_id: int
    reason: Optional[str] = field(default=None, compare=False)
    staff_member_id: int = field(default=0, compare=False)

    @property
    def target_id(self) -> int:
        return self.user_id


class JoinResult(enum.Enum):
    JOINED = "joined"
    ALREADY_JOINED = "already_joined"
    NOT_ACTIVE = "not_active"


@dataclass(slots=True)
class RedrawResult:
    winners: list
    invalid_ids: List[str] = field(default_factory=list)

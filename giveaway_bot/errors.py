"""Caller-visible giveaway errors raised by the lifecycle operations."""

from __future__ import annotations


class GiveawayError(RuntimeError):
    """Base class for rejections that are reported back to the invoking user."""


class GiveawayValidationError(GiveawayError, ValueError):
    """Raised when input for a giveaway operation is invalid."""


class InvalidGiveawayIdError(GiveawayValidationError):
    def __init__(self, raw_id: str) -> None:
        super().__init__(f"`{raw_id}` is not a valid giveaway ID.")
        self.raw_id = raw_id


class GiveawayNotFoundError(GiveawayError):
    def __init__(self, giveaway_id: object) -> None:
        super().__init__(f"No giveaway with the ID `{giveaway_id}` could be found.")
        self.giveaway_id = giveaway_id


class GiveawayWrongGuildError(GiveawayNotFoundError):
    """Raised when a giveaway exists but belongs to a different guild."""


class GiveawayNotActiveError(GiveawayError):
    def __init__(self, giveaway_id: object) -> None:
        super().__init__(f"The giveaway `{giveaway_id}` is not active.")
        self.giveaway_id = giveaway_id


class GiveawayStillActiveError(GiveawayError):
    def __init__(self, giveaway_id: object) -> None:
        super().__init__(
            f"The giveaway `{giveaway_id}` is still active. End it before redrawing winners."
        )
        self.giveaway_id = giveaway_id


class GuildUnavailableError(GiveawayError):
    def __init__(self, giveaway_id: object) -> None:
        super().__init__(
            f"The server for giveaway `{giveaway_id}` is not available right now. Try again later."
        )
        self.giveaway_id = giveaway_id


class WinnerCountUnchangedError(GiveawayError):
    def __init__(self, giveaway_id: object, winner_count: int) -> None:
        super().__init__(
            f"The giveaway `{giveaway_id}` already has {winner_count} winner(s); nothing was changed."
        )
        self.giveaway_id = giveaway_id
        self.winner_count = winner_count

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Optional

from .errors import GiveawayValidationError

_DURATION_TOKEN_RE = re.compile(r"(\d+)\s*([wdhms])", re.IGNORECASE)
_DURATION_RE = re.compile(r"^(\s*\d+\s*[wdhms]\s*)+$", re.IGNORECASE)

_UNIT_SECONDS = {
    "w": 7 * 24 * 60 * 60,
    "d": 24 * 60 * 60,
    "h": 60 * 60,
    "m": 60,
    "s": 1,
}


def parse_duration(value: str) -> timedelta:
    """Parse durations such as ``1w``, ``2d12h`` or ``90m``."""
    text = value.strip()
    if not text or not _DURATION_RE.match(text):
        raise GiveawayValidationError(
            f"`{value}` is not a valid duration. Use values such as `1w`, `2d12h` or `90m`."
        )
    seconds = 0
    for amount, unit in _DURATION_TOKEN_RE.findall(text):
        seconds += int(amount) * _UNIT_SECONDS[unit.lower()]
    return timedelta(seconds=seconds)


def parse_end_time(value: str, *, now: Optional[datetime] = None) -> datetime:
    """Resolve an end time given either as unix seconds or as a duration from now.

    The result is not checked against the current time; past timestamps are
    rejected when the giveaway is created.
    """
    text = (value or "").strip()
    if not text:
        raise GiveawayValidationError("An end time is required.")
    if text.isdigit():
        try:
            return datetime.fromtimestamp(int(text), tz=UTC)
        except (OverflowError, OSError, ValueError) as exc:
            raise GiveawayValidationError(f"`{text}` is not a valid unix timestamp.") from exc
    reference = now or datetime.now(tz=UTC)
    return reference + parse_duration(text)

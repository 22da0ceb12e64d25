"""Compact external representation of 128-bit giveaway identifiers."""

from __future__ import annotations

import base64
import binascii
import re
import uuid

from .errors import InvalidGiveawayIdError

_SHORT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{22}$")


def new_giveaway_id() -> uuid.UUID:
    return uuid.uuid4()


def format_giveaway_id(giveaway_id: uuid.UUID) -> str:
    """Encode the id as 22 characters of URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(giveaway_id.bytes).decode("ascii").rstrip("=")


def parse_giveaway_id(value: str) -> uuid.UUID:
    """Decode a short id produced by :func:`format_giveaway_id`.

    The canonical hyphenated UUID form is accepted as well so that ids copied
    from logs resolve to the same giveaway.
    """
    text = (value or "").strip()
    if _SHORT_ID_RE.match(text):
        try:
            raw = base64.urlsafe_b64decode(text + "==")
        except (binascii.Error, ValueError) as exc:
            raise InvalidGiveawayIdError(text) from exc
        parsed = uuid.UUID(bytes=raw)
        # reject non-canonical encodings whose trailing bits differ
        if format_giveaway_id(parsed) != text:
            raise InvalidGiveawayIdError(text)
        return parsed
    try:
        return uuid.UUID(text)
    except ValueError as exc:
        raise InvalidGiveawayIdError(text) from exc

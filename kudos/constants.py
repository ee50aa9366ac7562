"""
kudos.constants — Shared Constants & Helpers
=============================================

Single source of truth for ledger categories, catalog item types and the
rounding rule used across the economy.  Import from here instead of
duplicating literals in services and routes.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------
MAX_LEVEL = 99
DEFAULT_BASE_JUMP = 50
DEFAULT_DIFFICULTY_PCT = 8

# ---------------------------------------------------------------------------
# Catalog item types — one loadout slot per type
# ---------------------------------------------------------------------------
ITEM_AVATAR = "avatar"
ITEM_EFFECT = "effect"
ITEM_CORNER_BORDER = "corner_border"
ITEM_CARD_PLATE = "card_plate"

ITEM_TYPES: tuple[str, ...] = (
    ITEM_AVATAR,
    ITEM_EFFECT,
    ITEM_CORNER_BORDER,
    ITEM_CARD_PLATE,
)

# ---------------------------------------------------------------------------
# Ledger categories
# ---------------------------------------------------------------------------
CATEGORY_MANUAL = "manual"
CATEGORY_CHALLENGE = "challenge"
CATEGORY_ROULETTE = "roulette_spin"
CATEGORY_GIFT = "gift_open"
CATEGORY_AVATAR_DAILY = "avatar_daily"

# Category → modifier-stack field whose combined multiplier scales the grant
MULTIPLIER_CATEGORIES: dict[str, str] = {
    "rule_keeper": "rule_keeper_multiplier",
    "rule_breaker": "rule_breaker_multiplier",
    "spotlight": "spotlight_multiplier",
}

# Idempotency source types for externally-retriable grants
SOURCE_ROULETTE = "roulette_spin"
SOURCE_GIFT = "gift_open"
SOURCE_UNLOCK = "unlock_purchase"
SOURCE_DAILY = "avatar_daily"

MAX_CATEGORY_LENGTH = 64
MAX_NOTE_LENGTH = 200

_ROUNDING_EPSILON = 1e-9


def unlock_category(item_type: str) -> str:
    """Ledger category used for the debit of an item purchase."""
    return f"unlock_{item_type}"


# ---------------------------------------------------------------------------
# Numeric + time helpers
# ---------------------------------------------------------------------------
def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves rounding up (2.5 → 3).

    Python's built-in :func:`round` uses banker's rounding, which would make
    point grants differ by one on exact halves.  A tiny epsilon absorbs
    binary float noise such as ``10 * 1.15 == 11.499999999999998``.
    """
    return math.floor(value + 0.5 + _ROUNDING_EPSILON)


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)

"""
kudos.database.seed — Default Settings Seeder
==============================================

Baseline gameplay settings seeded on first startup so the level curve works
before staff touch anything.

Idempotent — only inserts keys that don't already exist.  Admin edits are
never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine

from kudos.constants import DEFAULT_BASE_JUMP, DEFAULT_DIFFICULTY_PCT
from kudos.database.engine import get_session
from kudos.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "levels.base_jump": (
        DEFAULT_BASE_JUMP, "levels", "Points needed for the first level-up",
    ),
    "levels.difficulty_pct": (
        DEFAULT_DIFFICULTY_PCT, "levels", "Percent growth of each level's jump",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    inserted = 0
    with get_session(engine) as session:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1

    if inserted:
        logger.info("Seeded %d default settings.", inserted)

"""
kudos.services.settings_service — Settings Reads & Writes
==========================================================

Typed read/write access to the ``settings`` table.  Gameplay tuning (the
level curve) lives here rather than in ``config.yaml``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from kudos.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_setting_value(session: Session, key: str, default=None):
    """Read a single setting's parsed value from an existing session.

    Returns *default* when the key does not exist.  A value that is not
    valid JSON is returned as the raw string.
    """
    row = session.get(Setting, key)
    if row is None:
        return default
    try:
        return json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        return row.value_json


def get_number_setting(session: Session, key: str, default: float) -> float:
    """Read a numeric setting, falling back to *default* on bad values."""
    value = get_setting_value(session, key, default)
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Setting %s is not numeric (%r); using %s", key, value, default)
        return default


def get_all_settings(engine) -> list[dict]:
    """Every setting, ordered by category then key, as plain dicts."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Setting).order_by(Setting.category, Setting.key)
        ).all()
        return [
            {
                "key": r.key,
                "value": json.loads(r.value_json),
                "category": r.category,
                "description": r.description,
            }
            for r in rows
        ]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def upsert_setting(
    engine,
    *,
    key: str,
    value: Any,
    category: str = "general",
    description: str | None = None,
) -> None:
    """Insert or update a single setting."""
    value_json = json.dumps(value)
    with Session(engine) as session:
        existing = session.get(Setting, key)
        if existing:
            existing.value_json = value_json
            if category:
                existing.category = category
            if description is not None:
                existing.description = description
        else:
            session.add(Setting(
                key=key,
                value_json=value_json,
                category=category,
                description=description,
            ))
        session.commit()
    logger.info("Setting %s updated → %s", key, value_json)

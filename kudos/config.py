"""
kudos.config — YAML Configuration Loader
=========================================

This module reads ``config.yaml`` for **infrastructure-only** settings
(program identity, API port, timezone).  Gameplay tuning values (the level
curve) live in the ``settings`` database table so staff can adjust them
without a redeploy.

Usage::

    from kudos.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.program_name)      # "Northside Martial Arts"
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class KudosConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    program_name: str

    # API
    api_port: int

    # Role claim required for admin-only endpoints
    admin_role: str = "admin"

    # IANA zone used when presenting dates to staff
    timezone: str = "UTC"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> KudosConfig:
    """Read *path* and return a :class:`KudosConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$KUDOS_CONFIG`` or ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path or os.getenv("KUDOS_CONFIG", DEFAULT_CONFIG_PATH))
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return KudosConfig(
        program_name=raw["program_name"],
        api_port=int(raw["api_port"]),
        admin_role=str(raw.get("admin_role") or "admin"),
        timezone=str(raw.get("timezone") or "UTC"),
    )

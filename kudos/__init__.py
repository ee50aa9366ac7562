"""
Kudos — Points Economy Engine for a Youth Activity Program
============================================================
Students earn points from many independent activities (coach grants,
challenges, prize-wheel spins, gifts) and spend them on cosmetic unlocks.
Kudos owns the append-only ledger, the level curve, the cosmetic modifier
stack and the eligibility rules that gate purchasing and equipping items.

Package layout::

    kudos/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Categories, item types, rounding helpers
    ├── errors.py          # Error taxonomy shared by services and API
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings seeder
    ├── engine/
    │   ├── levels.py      # Threshold curve (lifetime points → level)
    │   ├── modifiers.py   # Modifier stack combination rules
    │   ├── eligibility.py # Unlock-state resolution + purchase/equip gates
    │   └── limits.py      # Repeat-limit windows for challenges
    ├── services/
    │   ├── ledger_service.py    # Append, recompute, grant
    │   ├── unlock_service.py    # Purchase, equip, loadout
    │   ├── challenge_service.py # Challenge completion awards
    │   ├── roulette_service.py  # Prize-wheel spin confirmation
    │   ├── gift_service.py      # Gift opening
    │   ├── daily_service.py     # Daily free points
    │   └── ...                  # Catalog, levels, settings, reconciliation
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → staff payload, engine
        └── routes/        # Student, award, unlock and admin endpoints
"""

__version__ = "0.1.0"

"""
kudos.__main__ — Entry point for ``python -m kudos``
=====================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (infrastructure settings).
3. Create the SQLAlchemy engine, ensure tables exist and seed settings.
4. Either serve the API (default) or run one aggregate reconciliation pass.

Run with::

    python -m kudos              # serve the API on config.api_port
    python -m kudos reconcile    # repair drifted student aggregates and exit
"""

from __future__ import annotations

import argparse
import json
import logging

from dotenv import load_dotenv

from kudos.config import load_config
from kudos.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("kudos")


def main(argv: list[str] | None = None) -> None:
    """Bootstrap Kudos and run the requested command."""
    parser = argparse.ArgumentParser(prog="kudos", description="Kudos points economy")
    parser.add_argument("command", nargs="?", default="serve", choices=["serve", "reconcile"])
    args = parser.parse_args(argv)

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Infrastructure configuration.
    cfg = load_config()
    logger.info("Config loaded — Program: %s", cfg.program_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Command.
    if args.command == "reconcile":
        from kudos.services.reconciliation_service import reconcile_aggregates

        report = reconcile_aggregates(engine)
        print(json.dumps(report, indent=2))
        return

    import uvicorn

    uvicorn.run("kudos.api.main:app", host="0.0.0.0", port=cfg.api_port)


if __name__ == "__main__":
    main()

# src/backstage_gate/scripts/purge_handshakes.py
"""Delete expired handshake tokens.

Meant to run from cron or a scheduler. Expired tokens are already rejected by
the callback endpoint, so skipping a run never affects correctness.
"""
from __future__ import annotations

import argparse
import logging
import sys

from sqlalchemy.orm import sessionmaker

from backstage_gate.core.settings import settings
from backstage_gate.db.session import build_engine
from backstage_gate.services.maintenance import purge_expired_handshakes


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Purge expired handshake tokens")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL for this run",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    engine = build_engine(args.database_url or settings.effective_database_url)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        removed = purge_expired_handshakes(session)
    finally:
        session.close()
        engine.dispose()

    print(f"Removed {removed} expired handshake token(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Housekeeping jobs run outside the request path."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from backstage_gate.db.time import utcnow
from backstage_gate.repositories.handshake_repo import HandshakeRepository

logger = logging.getLogger(__name__)


def purge_expired_handshakes(
    session: Session, clock: Callable[[], datetime] = utcnow
) -> int:
    """Delete handshake tokens whose TTL has passed and return how many were removed.

    Expired tokens are already rejected on callback; purging only keeps the
    table small.
    """
    removed = HandshakeRepository(session).delete_expired(clock())
    session.commit()
    logger.info("Purged %d expired handshake tokens", removed)
    return removed

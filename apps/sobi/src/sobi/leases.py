from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sobi.db import utcnow
from sobi.models import CoordinatorLeaseRecord

logger = structlog.get_logger(__name__)


def acquire_lease(
    engine: Engine,
    name: str,
    holder: str,
    ttl_seconds: int,
    *,
    now: datetime | None = None,
) -> bool:
    """Claims or renews the named lease for ``holder``.

    Succeeds when nobody holds the lease, it has expired, or ``holder``
    already owns it.
    """
    now = now or utcnow()
    expires_at = now + timedelta(seconds=ttl_seconds)

    try:
        with Session(engine) as session, session.begin():
            lease = session.get(CoordinatorLeaseRecord, name, with_for_update=True)
            if lease is None:
                session.add(
                    CoordinatorLeaseRecord(
                        name=name,
                        holder=holder,
                        expires_at=expires_at,
                        updated_at=now,
                    )
                )
                return True

            if lease.holder != holder and lease.expires_at > now:
                logger.debug(
                    "lease_held_elsewhere",
                    lease=name,
                    holder=lease.holder,
                    expires_at=lease.expires_at.isoformat(),
                )
                return False

            lease.holder = holder
            lease.expires_at = expires_at
            lease.updated_at = now
            return True
    except IntegrityError:
        # Another worker inserted the row first.
        return False


def release_lease(engine: Engine, name: str, holder: str) -> None:
    with Session(engine) as session, session.begin():
        session.execute(
            delete(CoordinatorLeaseRecord)
            .where(CoordinatorLeaseRecord.name == name)
            .where(CoordinatorLeaseRecord.holder == holder)
        )

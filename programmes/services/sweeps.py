"""Scheduled maintenance: pending-update expiry and rejected-assignment purge.

Both halves are idempotent, so running the job twice, or alongside the
read-path trigger, only does the work once.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field

from sqlalchemy import select

from programmes.db import session_scope
from programmes.logging_config import ctx
from programmes.models import RoutineAssignment, utcnow
from programmes.services.assignments import cleanup_old_rejected
from programmes.services.updates import expire_stale_pending_updates

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: int = 0
    skipped: int = 0
    rejected_purged: int = 0
    expired_assignments: list[int] = field(default_factory=list)


def run_sweeps(now: dt.datetime | None = None) -> SweepReport:
    now = now or utcnow()
    report = SweepReport()
    with session_scope() as s:
        expiry = expire_stale_pending_updates(s, now)
        report.expired = expiry.expired
        report.skipped = expiry.skipped
        report.expired_assignments = expiry.expired_assignments

        client_ids = s.execute(
            select(RoutineAssignment.client_id).where(RoutineAssignment.status == "rejected").distinct()
        ).scalars()
        for client_id in list(client_ids):
            report.rejected_purged += cleanup_old_rejected(s, client_id, now)

    logger.info(
        "sweeps_completed",
        extra=ctx(expired=report.expired, skipped=report.skipped, rejected_purged=report.rejected_purged),
    )
    return report

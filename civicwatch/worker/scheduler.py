# civicwatch/worker/scheduler.py
from __future__ import annotations

import logging
import os
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session, sessionmaker
from tzlocal import get_localzone

from civicwatch.db.base import utcnow
from civicwatch.models.user import User

log = logging.getLogger("civicwatch.scheduler")


def _with_db(session_factory: sessionmaker, fn: Callable[[Session], int], name: str) -> int:
    """Run one job with a fresh DB session; failures are logged and count as 0."""
    db = session_factory()
    try:
        count = int(fn(db) or 0)
        log.info("job %s done (%s rows)", name, count)
        return count
    except Exception:
        log.exception("job %s failed", name)
        db.rollback()
        return 0
    finally:
        db.close()


def lift_expired_suspensions(db: Session) -> int:
    """Clear suspensions whose end date has passed; indefinite ones stay."""
    now = utcnow()
    rows = (
        db.query(User)
        .filter(
            User.is_suspended.is_(True),
            User.suspended_until.isnot(None),
            User.suspended_until <= now,
        )
        .all()
    )
    for u in rows:
        u.is_suspended = False
        u.suspended_until = None
    if rows:
        db.commit()
    return len(rows)


def make_scheduler(session_factory: sessionmaker, services) -> BackgroundScheduler:
    """
    Create the BackgroundScheduler with the maintenance jobs:
      - purge expired notifications   (hourly, minute 5)
      - lift expired suspensions      (hourly, minute 10)
      - recompute area statistics     (daily, APP_SCHEDULER_HOUR:APP_SCHEDULER_MINUTE)
    Timezone: APP_TIMEZONE, else the system zone.
    """
    tzname = os.getenv("APP_TIMEZONE") or str(get_localzone())
    hour = int(os.getenv("APP_SCHEDULER_HOUR", "3"))
    minute = int(os.getenv("APP_SCHEDULER_MINUTE", "0"))

    sched = BackgroundScheduler(timezone=tzname)

    sched.add_job(
        _with_db,
        CronTrigger(minute=5),
        args=[session_factory, services.notifier.purge_expired, "purge_notifications"],
        id="purge_notifications",
        replace_existing=True,
    )
    sched.add_job(
        _with_db,
        CronTrigger(minute=10),
        args=[session_factory, lift_expired_suspensions, "lift_suspensions"],
        id="lift_suspensions",
        replace_existing=True,
    )
    sched.add_job(
        _with_db,
        CronTrigger(hour=hour, minute=minute),
        args=[session_factory, services.areas.recompute_all, "recompute_area_stats"],
        id="recompute_area_stats",
        replace_existing=True,
    )
    return sched

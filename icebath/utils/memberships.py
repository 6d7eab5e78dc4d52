from datetime import date, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from icebath.models.entitlement import Membership


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def reset_weekly_sessions(db: Session, today: date) -> int:
    """
    Refill sessions_remaining for active memberships not yet reset this week.

    Returns the number of memberships reset.
    """
    monday = week_start(today)
    count = (
        db.query(Membership)
        .filter(
            Membership.status == "active",
            or_(Membership.last_session_reset.is_(None), Membership.last_session_reset < monday),
        )
        .update(
            {"sessions_remaining": Membership.sessions_per_week, "last_session_reset": monday},
            synchronize_session="fetch",
        )
    )
    db.commit()
    return count


def expire_old_memberships(db: Session, today: date) -> int:
    """Mark active memberships whose end_date has passed as expired."""
    count = (
        db.query(Membership)
        .filter(Membership.status == "active", Membership.end_date < today)
        .update({"status": "expired"}, synchronize_session="fetch")
    )
    db.commit()
    return count

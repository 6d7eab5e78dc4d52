from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from icebath.api.deps import get_clock, get_current_user, get_db
from icebath.core.clock import Clock
from icebath.core.security import CurrentUser
from icebath.models.booking import Booking
from icebath.schemas.booking import Booking as BookingSchema
from icebath.schemas.common import PaginatedResponse
from icebath.schemas.entitlement import CreditGrant, EntitlementSummary, MembershipStatus, TokenGrant
from icebath.services import entitlements

router = APIRouter(prefix="/me", tags=["Me"])


# ---------------------------------------------------------------------------
# Entitlements: tokens, membership and store credit
# ---------------------------------------------------------------------------


@router.get("/entitlements", response_model=EntitlementSummary)
def get_entitlements(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    """Everything the signed-in customer can book with, and whether today's free session is used."""
    now = clock.now()
    tokens = entitlements.resolve_tokens(db, current_user.email, now)
    credits = entitlements.resolve_credits(db, current_user.id, now)
    membership = entitlements.resolve_membership(db, current_user.id, clock.today())

    membership_out = None
    if membership:
        m = membership.membership
        membership_out = MembershipStatus(
            id=m.id,
            membership_type=m.membership_type,
            sessions_per_week=m.sessions_per_week,
            sessions_remaining=membership.sessions_remaining,
            is_unlimited=membership.is_unlimited,
            start_date=m.start_date,
            end_date=m.end_date,
            last_session_reset=m.last_session_reset,
        )

    used_today = entitlements.has_used_free_entitlement_today(db, current_user.email, clock.today())
    return EntitlementSummary(
        email=current_user.email,
        tokens=[TokenGrant.model_validate(t) for t in tokens],
        total_tokens=sum(t.tokens_remaining for t in tokens),
        membership=membership_out,
        can_book_with_membership=bool(membership and membership.can_book),
        credits=[CreditGrant.model_validate(c) for c in credits],
        total_credit=sum(c.credit_balance for c in credits),
        used_free_session_today=used_today is not None,
    )


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


@router.get("/bookings", response_model=PaginatedResponse[BookingSchema])
def list_my_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Return the current user's bookings, latest session first."""
    query = db.query(Booking).filter(Booking.user_id == current_user.id)
    total = query.count()
    bookings = (
        query.order_by(Booking.session_date.desc(), Booking.session_time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PaginatedResponse(
        data=bookings,
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit,
    )

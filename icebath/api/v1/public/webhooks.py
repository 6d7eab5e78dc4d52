import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from icebath.api.deps import get_clock, get_db, get_email_sender, get_payment_gateway
from icebath.core.clock import Clock
from icebath.services.cancellation import refund_unplaced_payment
from icebath.services.email import ResendEmailSender, send_booking_confirmation, send_gift_card_email
from icebath.services.gift_cards import mark_gift_card_paid
from icebath.services.orchestrator import confirm_booking
from icebath.services.payment_gateway import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        logger.warning("Ignoring malformed id %r in session metadata", value)
        return None


def _booking_paid(db: Session, session: dict, clock: Clock, gateway: StripeGateway,
                  email_sender: ResendEmailSender) -> None:
    metadata = session.get("metadata") or {}
    try:
        booking, changed = confirm_booking(db, session["id"], _parse_uuid(metadata.get("time_slot_id")), clock)
        db.commit()
    except Exception:
        db.rollback()
        raise
    if not changed:
        return
    db.refresh(booking)
    if booking.booking_status == "cancelled":
        # Paid after the hold was dropped and the seats went to someone else
        refund_unplaced_payment(db, booking, gateway)
    elif not send_booking_confirmation(email_sender, booking):
        logger.warning("Confirmation email for %s was not sent", booking.booking_reference)


def _gift_card_paid(db: Session, session: dict, clock: Clock, email_sender: ResendEmailSender) -> None:
    card = mark_gift_card_paid(db, session["id"], clock)
    if card is not None and not send_gift_card_email(email_sender, card):
        logger.warning("Gift card email for %s was not sent", card.gift_code)


def _process_event(payload: bytes, signature: Optional[str], db: Session, clock: Clock,
                   gateway: StripeGateway, email_sender: ResendEmailSender) -> dict:
    event = gateway.construct_event(payload, signature)
    event_type = event.get("type")
    logger.info("Webhook event received: %s", event_type)

    if event_type != "checkout.session.completed":
        return {"received": True}

    session = event["data"]["object"]
    kind = (session.get("metadata") or {}).get("type")
    if kind == "booking":
        _booking_paid(db, session, clock, gateway, email_sender)
    elif kind == "gift_card":
        _gift_card_paid(db, session, clock, email_sender)
    else:
        logger.info("Ignoring completed checkout %s of type %r", session.get("id"), kind)
    return {"received": True}


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    gateway: StripeGateway = Depends(get_payment_gateway),
    email_sender: ResendEmailSender = Depends(get_email_sender),
):
    """
    Stripe event sink. Only ``checkout.session.completed`` is acted on:
    bookings are confirmed (then emailed) and gift card purchases marked paid
    and sent to their recipient.

    Async only to read the raw body for the signature check; the database and
    email work runs in the threadpool like any other route.
    """
    payload = await request.body()
    return await run_in_threadpool(_process_event, payload, stripe_signature, db, clock, gateway, email_sender)

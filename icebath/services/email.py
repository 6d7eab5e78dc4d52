import logging
from html import escape
from typing import Optional

import resend

from icebath.core.config import settings
from icebath.models.booking import Booking
from icebath.models.gift_card import GiftCard

logger = logging.getLogger(__name__)


class ResendEmailSender:
    """Transactional mail through Resend. ``send`` never raises; it reports success."""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.from_email = from_email or settings.EMAIL_FROM

    def send(self, to: str, subject: str, html: str) -> bool:
        if not self.api_key:
            logger.warning("RESEND_API_KEY not set, skipping email to %s", to)
            return False
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to],
                "subject": subject,
                "html": html,
            })
        except Exception as e:
            logger.error("Failed to send email to %s: %s", to, e)
            return False
        logger.info("Email sent to %s (%s)", to, response.get("id") if isinstance(response, dict) else response)
        return True


def get_email_sender() -> ResendEmailSender:
    return ResendEmailSender()


def booking_confirmation_html(booking: Booking, remaining_note: Optional[str] = None) -> str:
    when = f"{booking.session_date.strftime('%A %d %B %Y')} at {booking.session_time.strftime('%H:%M')}"
    guests = "Private session" if booking.booking_type == "private" else f"{booking.guest_count} guest(s)"
    paid = "Free" if not booking.final_amount else f"£{booking.final_amount / 100:.2f}"
    extra = f"<p>{remaining_note}</p>" if remaining_note else ""
    return (
        f"<h1>Booking confirmed</h1>"
        f"<p>Hi {booking.customer_name},</p>"
        f"<p>Your session is booked for <strong>{when}</strong>.</p>"
        f"<ul>"
        f"<li>Reference: {booking.booking_reference}</li>"
        f"<li>{guests}</li>"
        f"<li>Paid: {paid}</li>"
        f"</ul>"
        f"{extra}"
        f"<p>Please arrive 10 minutes early.</p>"
    )


def send_booking_confirmation(sender: ResendEmailSender, booking: Booking, remaining_note: Optional[str] = None) -> bool:
    return sender.send(
        booking.customer_email,
        f"Booking confirmed - {booking.booking_reference}",
        booking_confirmation_html(booking, remaining_note),
    )


def gift_card_html(card: GiftCard) -> str:
    recipient = escape(card.recipient_name or card.purchaser_name)
    redeem_url = f"{settings.SITE_URL}/redeem-gift-card?code={card.gift_code}"
    note = f"<blockquote>{escape(card.message)}</blockquote>" if card.message else ""
    return (
        f"<h1>You've received a gift card</h1>"
        f"<p>Hi {recipient},</p>"
        f"<p>{escape(card.purchaser_name)} has sent you an Ice Bath Studio gift card worth "
        f"<strong>£{card.amount / 100:.2f}</strong>.</p>"
        f"{note}"
        f"<p>Your code: <strong>{card.gift_code}</strong></p>"
        f'<p><a href="{redeem_url}">Redeem your gift card</a></p>'
        f"<p>Sign in to add the credit to your account. "
        f"It stays valid for {settings.GIFT_CREDIT_VALID_DAYS} days from redemption.</p>"
    )


def send_gift_card_email(sender: ResendEmailSender, card: GiftCard) -> bool:
    """Send the code to the recipient, or to the purchaser when no recipient was given."""
    return sender.send(
        card.recipient_email or card.purchaser_email,
        f"You've received a £{card.amount / 100:.2f} Ice Bath Studio gift card",
        gift_card_html(card),
    )

"""
Stripe Checkout adapter.

Everything Stripe-specific lives here so the booking services only see
``CheckoutSession``/``SessionStatus`` and ``UpstreamFailure``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe

from icebath.core.config import settings
from icebath.core.exceptions import InvalidInput, UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    id: str
    url: Optional[str]


@dataclass
class SessionStatus:
    id: str
    payment_status: str  # paid | unpaid | no_payment_required
    status: Optional[str] = None  # open | complete | expired
    payment_intent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class StripeGateway:
    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET

    def _configure(self) -> None:
        if not self.api_key:
            raise UpstreamFailure("Payments are not configured")
        stripe.api_key = self.api_key

    def create_checkout_session(
        self,
        amount: int,
        product_name: str,
        description: str,
        customer_email: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        self._configure()
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                customer_email=customer_email,
                line_items=[{
                    "price_data": {
                        "currency": settings.CURRENCY,
                        "product_data": {"name": product_name, "description": description},
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }],
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout session creation failed: %s", e)
            raise UpstreamFailure("Could not start payment, please try again")
        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_session(self, session_id: str) -> SessionStatus:
        self._configure()
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            logger.error("Stripe session %s lookup failed: %s", session_id, e)
            raise UpstreamFailure("Failed to verify payment with Stripe")
        return SessionStatus(
            id=session.id,
            payment_status=session.payment_status,
            status=session.status,
            payment_intent=session.payment_intent,
            metadata=dict(session.metadata or {}),
        )

    def refund(self, payment_intent: str, amount: Optional[int] = None) -> str:
        """Refund ``amount`` pence (everything when None). Returns the refund id."""
        self._configure()
        params: Dict[str, Any] = {"payment_intent": payment_intent}
        if amount is not None:
            params["amount"] = amount
        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            logger.error("Stripe refund for %s failed: %s", payment_intent, e)
            raise UpstreamFailure(f"Refund failed: {e}")
        logger.info("Stripe refund %s created for %s", refund.id, payment_intent)
        return refund.id

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise UpstreamFailure("Webhook secret not configured")
        if not signature:
            raise InvalidInput("Missing Stripe-Signature header")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            raise InvalidInput("Invalid webhook signature")
        except ValueError as e:
            raise InvalidInput(f"Invalid webhook payload: {e}")
        return event.to_dict() if hasattr(event, "to_dict") else dict(event)


def get_payment_gateway() -> StripeGateway:
    return StripeGateway()

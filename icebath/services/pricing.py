from sqlalchemy.orm import Session

from icebath.core.config import settings
from icebath.models.customer import PricingConfig


def _configured_price(db: Session, service_type: str, fallback: int) -> int:
    row = (
        db.query(PricingConfig)
        .filter(PricingConfig.service_type == service_type, PricingConfig.is_active == True)  # noqa: E712
        .order_by(PricingConfig.created_at.desc())
        .first()
    )
    return row.price_amount if row else fallback


def base_price(db: Session, booking_type: str, guest_count: int) -> int:
    """Pence before any discount: per person for communal, flat for private."""
    if booking_type == "private":
        return _configured_price(db, "private", settings.PRIVATE_PRICE)
    return _configured_price(db, "combined", settings.COMMUNAL_PRICE) * guest_count

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from icebath.core.clock import Clock, get_clock
from icebath.core.exceptions import NotFound, Unauthorized
from icebath.core.security import CurrentUser, decode_token
from icebath.db.session import get_db
from icebath.services.email import ResendEmailSender, get_email_sender
from icebath.services.payment_gateway import StripeGateway, get_payment_gateway

__all__ = [
    "Clock",
    "ResendEmailSender",
    "StripeGateway",
    "get_clock",
    "get_current_admin_user",
    "get_current_user",
    "get_db",
    "get_email_sender",
    "get_optional_user",
    "get_payment_gateway",
]

bearer_scheme = HTTPBearer(auto_error=False)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[CurrentUser]:
    """Guest checkout is allowed: no header means no user, a bad header is still an error."""
    if credentials is None:
        return None
    user = decode_token(credentials.credentials)
    if user is None:
        raise Unauthorized("Invalid authentication. Please sign in again.")
    return user


def get_current_user(user: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if user is None:
        raise Unauthorized("Authentication required. Please sign in.")
    return user


def get_current_admin_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    # Non-admins get a 404 so admin routes are not discoverable
    if not user.is_admin:
        raise NotFound("Not found")
    return user

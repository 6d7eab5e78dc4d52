from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from jose import jwt, JWTError

from icebath.core.config import settings

ALGORITHM = "HS256"


@dataclass
class CurrentUser:
    """Identity verified from a Supabase Auth access token."""

    id: UUID
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: str = "user"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(
    subject: str,
    email: str,
    role: str = "user",
    user_metadata: Optional[Dict[str, Any]] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Mint a token shaped like Supabase's. Used by tests and local tooling."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode = {
        "exp": expire,
        "sub": str(subject),
        "email": email,
        "aud": settings.SUPABASE_JWT_AUDIENCE,
        "role": "authenticated",
        "app_metadata": {"role": role},
        "user_metadata": user_metadata or {},
    }
    return jwt.encode(to_encode, settings.SUPABASE_JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[CurrentUser]:
    """Returns the verified identity, or None if the token is invalid/expired."""
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except JWTError:
        return None

    sub = payload.get("sub")
    email = payload.get("email")
    if not sub or not email:
        return None
    try:
        user_id = UUID(sub)
    except ValueError:
        return None

    user_metadata = payload.get("user_metadata") or {}
    app_metadata = payload.get("app_metadata") or {}
    return CurrentUser(
        id=user_id,
        email=email.strip().lower(),
        full_name=user_metadata.get("full_name") or user_metadata.get("name"),
        phone=user_metadata.get("phone"),
        role=app_metadata.get("role", "user"),
        metadata=user_metadata,
    )

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from payout_ledger.core.config import settings
from payout_ledger.core.enums import Role
from payout_ledger.exceptions import AuthenticationException


class Actor(BaseModel):
    """Authenticated caller: a provider acting on their own payouts, or an admin."""

    actor_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(sub: str, role: Role, minutes: Optional[int] = None) -> str:
    exp_minutes = minutes or settings.jwt_access_minutes
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "role": role.value,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Actor:
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
        return Actor(actor_id=payload.get("sub"), role=payload.get("role"))
    except (JWTError, ValidationError) as exc:
        raise AuthenticationException(message="Could not validate credentials") from exc

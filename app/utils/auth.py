"""
Bearer-token authentication against the external identity provider

Tokens are HS256 JWTs carrying ``sub`` (stable user id) and ``role``.
"""
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from app.config import settings

LEARNER = "student"
TEACHER = "teacher"
ADMIN = "admin"


class Principal(BaseModel):
    sub: UUID
    role: str

    @property
    def id(self) -> UUID:
        return self.sub

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


bearer = HTTPBearer()


def create_token(user_id: UUID, role: str, ttl_minutes: int = 120) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Principal:
    try:
        payload = jwt.decode(creds.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        principal = Principal(sub=payload["sub"], role=payload.get("role", ""))
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    request.state.user_id = principal.id
    return principal


def require_roles(*roles: str):
    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return principal
    return checker

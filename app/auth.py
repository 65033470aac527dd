import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import FrozenSet, List, Optional

import bcrypt
from fastapi import Cookie, Depends, Header, Request, Response
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.errors import forbidden, unauthenticated
from app.models import Role, User

COOKIE_NAME = "token"
ALGORITHM = "HS256"

PRODUCTS_WRITE = "products:write"
ORDERS_MANAGE = "orders:manage"
USERS_MANAGE = "users:manage"

ROLE_PERMISSIONS = {
    Role.USER: frozenset(),
    Role.ADMIN: frozenset({PRODUCTS_WRITE, ORDERS_MANAGE, USERS_MANAGE}),
}


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role
    permissions: FrozenSet[str]

    def can(self, permission: str) -> bool:
        return permission in self.permissions


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def generate_token_code(length: int) -> str:
    return secrets.token_hex((length + 1) // 2)[:length]


def create_access_token(user_id: str) -> str:
    settings = get_settings()
    expires = datetime.now(timezone.utc) + timedelta(days=settings.jwt_expires_days)
    return jwt.encode({"sub": user_id, "exp": expires}, settings.jwt_secret, algorithm=ALGORITHM)


def set_auth_cookie(response: Response, user_id: str) -> str:
    settings = get_settings()
    token = create_access_token(user_id)
    response.set_cookie(
        COOKIE_NAME,
        token,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        max_age=settings.jwt_expires_days * 24 * 60 * 60,
    )
    return token


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME)


def _candidate_tokens(cookie_token: Optional[str], authorization: Optional[str]) -> List[str]:
    candidates = []
    if cookie_token:
        candidates.append(cookie_token)
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            candidates.append(parts[1])
    return candidates


def _decode_subject(candidates: List[str]) -> Optional[str]:
    """Return the subject of the first token that verifies.

    The cookie is tried first; a stale cookie falls through to the bearer header.
    """
    secret = get_settings().jwt_secret
    for raw in candidates:
        try:
            payload = jwt.decode(raw, secret, algorithms=[ALGORITHM])
        except JWTError:
            continue
        return payload.get("sub")
    return None


def get_current_principal(
    request: Request,
    token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Principal:
    candidates = _candidate_tokens(token, authorization)
    if not candidates:
        raise unauthenticated()

    user_id = _decode_subject(candidates)
    if user_id is None:
        raise unauthenticated("Invalid or missing token")

    user = db.get(User, user_id)
    if not user:
        raise unauthenticated()

    principal = Principal(user_id=user.id, role=user.role, permissions=ROLE_PERMISSIONS[user.role])
    request.state.principal = principal
    return principal


def require_permission(permission: str):
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.can(permission):
            raise forbidden("You do not have permission to perform this action")
        return principal

    return dependency

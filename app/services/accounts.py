import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from app.auth import generate_token_code, hash_password, verify_password
from app.errors import conflict, not_found, validation_error
from app.models import ShippingAddress, User
from app.pagination import paginate_offset
from app.schemas import ShippingAddressRequest, UserQuery, UserUpdateRequest

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_LENGTH = 32
VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_LENGTH = 20
RESET_TOKEN_TTL = timedelta(minutes=15)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _still_valid(expires_at: Optional[datetime]) -> bool:
    if expires_at is None:
        return False
    # SQLite hands back naive datetimes
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at > _now()


def _issue_verification_token(user: User) -> None:
    user.verification_token = generate_token_code(VERIFICATION_TOKEN_LENGTH)
    user.verification_token_expires_at = _now() + VERIFICATION_TOKEN_TTL


def sign_up(db: Session, email: str, name: str, password: str) -> User:
    if db.query(User).filter(User.email == email).first():
        raise conflict("User already exists")

    user = User(email=email, name=name, password_hash=hash_password(password))
    _issue_verification_token(user)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User %s signed up", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None or not verify_password(password, user.password_hash):
        raise validation_error("Incorrect email or password")
    return user


def verify_email(db: Session, token: str) -> User:
    user = db.query(User).filter(User.verification_token == token).first()
    if user is None or not _still_valid(user.verification_token_expires_at):
        raise validation_error(
            "Invalid or expired verification code. Resend an account verification request"
        )

    user.is_verified = True
    user.verification_token = None
    user.verification_token_expires_at = None
    db.commit()
    db.refresh(user)
    return user


def reissue_verification(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise not_found(
            "User not found. Please make sure you entered the email you used to create an account."
        )
    if user.is_verified:
        raise validation_error("User is already verified")
    if _still_valid(user.verification_token_expires_at):
        raise validation_error("Verification token is still valid. Please check your email.")

    _issue_verification_token(user)
    db.commit()
    db.refresh(user)
    return user


def request_password_reset(db: Session, email: str) -> Optional[User]:
    """Issue a reset token when appropriate. Returns the user only if one was issued."""
    user = db.query(User).filter(User.email == email).first()
    if user is None or not user.is_verified:
        return None
    if _still_valid(user.password_reset_token_expires_at):
        return None

    user.password_reset_token = generate_token_code(RESET_TOKEN_LENGTH)
    user.password_reset_token_expires_at = _now() + RESET_TOKEN_TTL
    db.commit()
    db.refresh(user)
    return user


def _set_new_password(user: User, new_password: str) -> None:
    if verify_password(new_password, user.password_hash):
        raise validation_error("New password must be different from current password")
    user.password_hash = hash_password(new_password)


def reset_password(db: Session, token: str, new_password: str) -> User:
    user = db.query(User).filter(User.password_reset_token == token).first()
    if user is None or not _still_valid(user.password_reset_token_expires_at):
        raise validation_error(
            "Invalid or expired password reset token. Please request a new password reset."
        )

    _set_new_password(user, new_password)
    user.password_reset_token = None
    user.password_reset_token_expires_at = None
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user_id: str, current_password: str, new_password: str) -> User:
    user = get_user(db, user_id)
    if not verify_password(current_password, user.password_hash):
        raise validation_error("Current password is incorrect")

    _set_new_password(user, new_password)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: str) -> User:
    user = (
        db.query(User)
        .options(selectinload(User.shipping_address))
        .filter(User.id == user_id)
        .first()
    )
    if user is None:
        raise not_found("User not found")
    return user


def set_shipping_address(db: Session, user_id: str, data: ShippingAddressRequest) -> ShippingAddress:
    user = get_user(db, user_id)
    if user.shipping_address is None:
        user.shipping_address = ShippingAddress(**data.model_dump())
    else:
        for key, value in data.model_dump().items():
            setattr(user.shipping_address, key, value)
    db.commit()
    db.refresh(user.shipping_address)
    return user.shipping_address


def delete_shipping_address(db: Session, user_id: str) -> None:
    user = get_user(db, user_id)
    if user.shipping_address is None:
        raise not_found("Shipping Address not found")
    user.shipping_address = None
    db.commit()


def list_users(db: Session, params: UserQuery) -> Tuple[List[User], int]:
    query = db.query(User)
    if params.search_query:
        term = f"%{params.search_query}%"
        query = query.filter(or_(User.name.like(term), User.email.like(term)))
    return paginate_offset(query, params.page, params.page_size, [User.created_at.desc(), User.id])


def update_user(db: Session, user_id: str, data: UserUpdateRequest) -> User:
    user = get_user(db, user_id)
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(user, key, value)
    db.commit()
    return get_user(db, user_id)


def delete_user(db: Session, user_id: str) -> None:
    user = get_user(db, user_id)
    db.delete(user)
    db.commit()

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.orm import Session

from app import mailer
from app.auth import Principal, clear_auth_cookie, get_current_principal, set_auth_cookie
from app.database import get_db
from app.limits import account_limit
from app.schemas import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UserOut,
    envelope,
)
from app.services import accounts

router = APIRouter(prefix="/auth", tags=["auth"])

RESET_REQUESTED = "If an account exists with this email, you will receive a password reset link"


def _user(user) -> dict:
    return UserOut.model_validate(user).model_dump(mode="json")


@router.post("/sign-up", status_code=201)
@account_limit
def sign_up(
    request: Request,
    body: SignupRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    user = accounts.sign_up(db, body.email, body.name, body.password)
    set_auth_cookie(response, user.id)
    background_tasks.add_task(mailer.send_verification_email, user.email, user.name, user.verification_token)
    return envelope("User created successfully", user=_user(user))


@router.post("/login")
@account_limit
def login(request: Request, body: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = accounts.authenticate(db, body.email, body.password)
    set_auth_cookie(response, user.id)
    return envelope("Login successful", user=_user(user))


@router.post("/logout")
@account_limit
def logout(request: Request, response: Response):
    clear_auth_cookie(response)
    return envelope("Logout successful")


@router.get("/check-auth")
@account_limit
def check_auth(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return envelope("User is Authenticated", user=_user(accounts.get_user(db, principal.user_id)))


@router.get("/verify-email/{token}")
@account_limit
def verify_email(request: Request, token: str, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    user = accounts.verify_email(db, token)
    background_tasks.add_task(mailer.send_welcome_email, user.email, user.name)
    return envelope("Account Verification Successful", user=_user(user))


@router.post("/resend-verify-email")
@account_limit
def resend_verify_email(
    request: Request,
    body: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    user = accounts.reissue_verification(db, body.email)
    background_tasks.add_task(mailer.send_verification_email, user.email, user.name, user.verification_token)
    return envelope("Verification email resent successfully")


@router.post("/forgot-password")
@account_limit
def forgot_password(
    request: Request,
    body: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    user = accounts.request_password_reset(db, body.email)
    if user is not None:
        background_tasks.add_task(
            mailer.send_password_reset_email, user.email, user.name, user.password_reset_token
        )
    return envelope(RESET_REQUESTED)


@router.post("/reset-password/{token}")
@account_limit
def reset_password(
    request: Request,
    token: str,
    body: ResetPasswordRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    user = accounts.reset_password(db, token, body.new_password)
    set_auth_cookie(response, user.id)
    background_tasks.add_task(mailer.send_password_changed_email, user.email, user.name)
    return envelope("Password reset successful")


@router.post("/change-password")
@account_limit
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    user = accounts.change_password(db, principal.user_id, body.current_password, body.new_password)
    set_auth_cookie(response, user.id)
    background_tasks.add_task(mailer.send_password_changed_email, user.email, user.name)
    return envelope("Password changed successfully.")

import logging

import resend

from app.config import get_settings

logger = logging.getLogger(__name__)


def send_email(to: str, subject: str, html: str) -> bool:
    """Send through Resend. Best effort: a failure is logged and reported as False."""
    settings = get_settings()
    if not settings.resend_api_key:
        logger.warning("Resend API key is not configured, skipping email to %s", to)
        return False

    resend.api_key = settings.resend_api_key
    try:
        response = resend.Emails.send({
            "from": settings.mail_from,
            "to": [to],
            "subject": subject,
            "html": html,
        })
    except Exception:
        logger.warning("Error while sending mail to %s", to, exc_info=True)
        return False

    logger.info("Message sent: %s", response.get("id") if isinstance(response, dict) else response)
    return True


def send_verification_email(email: str, name: str, token: str) -> bool:
    link = f"{get_settings().backend_url}/v1/api/auth/verify-email/{token}"
    return send_email(
        email,
        "Verify your account",
        f"<p>Hello {name}</p>"
        f'<b>Click the following link to verify your email address: <a href="{link}">Verify Email</a></b>',
    )


def send_welcome_email(email: str, name: str) -> bool:
    return send_email(
        email,
        "Welcome to the shop",
        f"<h1>Welcome</h1><b>Hello {name}, welcome to your new shopping experience.</b>"
        f'<b><a href="{get_settings().frontend_url}">Visit site</a></b>',
    )


def send_password_reset_email(email: str, name: str, token: str) -> bool:
    link = f"{get_settings().frontend_url}/reset-password/{token}"
    return send_email(
        email,
        "Reset your password",
        f"<p>Hello {name}</p>"
        f'<b>Use the following link within 15 minutes to reset your password: <a href="{link}">Reset Password</a></b>',
    )


def send_password_changed_email(email: str, name: str) -> bool:
    return send_email(
        email,
        "Your password has changed",
        f"<b>Hello {name}</b><br/>"
        f"<b>If you did not perform this action, you can recover access by entering {email} "
        f'into the reset password form at <a href="{get_settings().frontend_url}">the shop</a></b>',
    )

"""
Email service using SendGrid for sign-in links and family invites.
"""

import os
import logging
from urllib.parse import quote
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def get_bool_env(key: str, default: bool = True) -> bool:
    """
    Parse a boolean environment variable from a string value.

    Values like "true", "True", "1", "yes" are True; everything else
    (including "false", "0", empty string) is False.

    Args:
        key: Environment variable name
        default: Default value if the variable is not set

    Returns:
        bool: Parsed boolean value
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


# SendGrid Configuration
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@uyp.app")
ENABLE_EMAIL = get_bool_env("ENABLE_EMAIL", default=True)
APP_URL = os.getenv("APP_URL", "http://localhost:5173")


def send_email(to: str, subject: str, body: str) -> bool:
    """
    Send a plain-text email via SendGrid.

    Never raises: delivery problems are logged and reported as False so that
    callers can continue after issuing a token.

    Args:
        to: Recipient address
        subject: Subject line
        body: Plain-text body

    Returns:
        bool: True if sent (or intentionally skipped), False on failure
    """
    if not ENABLE_EMAIL:
        logger.info("Email sending is disabled. Email to %s skipped.", to)
        return True

    # Without SendGrid configured (local dev) the message only goes to the log
    if not SENDGRID_API_KEY:
        logger.warning("SENDGRID_API_KEY not configured. Email '%s' not sent.", subject)
        logger.debug("[DEV EMAIL] To: %s\n%s", to, body)
        return True

    try:
        message = Mail(
            from_email=Email(EMAIL_FROM),
            to_emails=To(to),
            subject=subject,
            plain_text_content=Content("text/plain", body),
        )

        sg = SendGridAPIClient(SENDGRID_API_KEY)
        response = sg.send(message)

        if response.status_code >= 200 and response.status_code < 300:
            logger.info(f"Email '{subject}' sent successfully")
            return True
        else:
            logger.error(f"SendGrid returned status {response.status_code}: {response.body}")
            return False

    except Exception as e:
        logger.error(f"Failed to send email '{subject}': {str(e)}")
        return False


def build_verify_url(email: str, raw_token: str) -> str:
    """Build the clickable magic-link URL carrying the raw token."""
    return f"{APP_URL}/auth/verify?token={raw_token}&email={quote(email)}"


def send_sign_in_email(email: str, code: str, raw_token: str) -> bool:
    """
    Send the sign-in email with both the typed code and the clickable link.

    Args:
        email: Recipient address
        code: 6-digit sign-in code
        raw_token: Raw magic-link token (only its hash is stored)

    Returns:
        bool: Result of send_email
    """
    verify_url = build_verify_url(email, raw_token)
    body = "\n".join(
        [
            "Sign in to UYP",
            "",
            f"Your code: {code}",
            "",
            f"Or click: {verify_url}",
            "(expires in 15 minutes)",
        ]
    )
    return send_email(email, "Your UYP sign-in link", body)


def send_invite_email(email: str, code: str, player_name: str) -> bool:
    """
    Send a family invite code to an email address.

    Args:
        email: Recipient address
        code: Invite code
        player_name: Display name of the player being shared

    Returns:
        bool: Result of send_email
    """
    body = "\n".join(
        [
            f"You've been invited to join {player_name}'s family on UYP.",
            "",
            f"Your invite code: {code}",
            "(expires in 24 hours)",
        ]
    )
    return send_email(email, "You're invited to UYP", body)

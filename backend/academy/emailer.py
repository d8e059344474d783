# academy/emailer.py

import logging
import smtplib
import socket
from email.message import EmailMessage

from academy.config import env_bool, env_int, env_str

logger = logging.getLogger(__name__)


def send_email_if_configured(to_email: str, subject: str, body: str) -> bool:
    """
    Sends email only if SMTP is configured.
    NEVER raises. Returns True if attempted+sent, False if skipped/failed.
    """
    if not env_bool("EMAIL_ENABLED", False):
        return False

    host = env_str("SMTP_HOST", "") or ""
    port = env_int("SMTP_PORT", 587)
    username = env_str("SMTP_USERNAME", "") or ""
    password = env_str("SMTP_PASSWORD", "") or ""
    from_name = env_str("SMTP_FROM_NAME", "Elitez Club") or "Elitez Club"
    from_email = env_str("SMTP_FROM_EMAIL", username) or ""

    if not host or not username or not password or not from_email:
        logger.warning("email skipped: missing SMTP_* settings (host/username/password/from)")
        return False

    try:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{from_name} <{from_email}>"
        msg["To"] = to_email
        msg.set_content(body)

        with smtplib.SMTP(host, port, timeout=15) as server:
            server.ehlo()
            server.starttls()
            server.login(username, password)
            server.send_message(msg)

        logger.info("email sent to %s", to_email)
        return True

    except socket.gaierror as e:
        logger.error("email failed: DNS lookup failed for SMTP_HOST=%r: %s", host, e)
        return False
    except (smtplib.SMTPException, OSError) as e:
        logger.error("email to %s failed: %s", to_email, e)
        return False

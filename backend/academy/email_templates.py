# academy/email_templates.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

ORG_NAME = "Elitez Club"


@dataclass(frozen=True)
class EmailParts:
    subject: str
    body: str


def _clean(s: Optional[str]) -> str:
    return (s or "").strip()


def _footer(org_name: str) -> str:
    return (
        "\n\n"
        "Regards,\n"
        f"{org_name}\n"
    )


def password_reset(name: Optional[str], reset_url: str, expires_minutes: int, org_name: str = ORG_NAME) -> EmailParts:
    subject = f"{org_name}: Reset your password"
    body = (
        f"Hello {_clean(name) or 'there'},\n\n"
        "We received a request to reset your password. Use the link below to choose a new one:\n\n"
        f"{reset_url}\n\n"
        f"The link expires in {expires_minutes} minutes. "
        "If you did not ask for this, you can ignore this email."
        f"{_footer(org_name)}"
    )
    return EmailParts(subject=subject, body=body)


def account_disabled(name: Optional[str], contact_url: str, org_name: str = ORG_NAME) -> EmailParts:
    subject = f"{org_name}: Your account has been disabled"
    body = (
        f"Hello {_clean(name) or 'there'},\n\n"
        "Your account has been disabled by an administrator and you have been signed out.\n"
        "Please contact administration if you believe this is a mistake."
    )
    if _clean(contact_url):
        body += f"\n\nContact: {_clean(contact_url)}"
    body += _footer(org_name)
    return EmailParts(subject=subject, body=body)


def support_reply(name: Optional[str], ticket_id: int, subject_line: str, org_name: str = ORG_NAME) -> EmailParts:
    subject = f"{org_name}: New reply on ticket #{ticket_id}"
    body = (
        f"Hello {_clean(name) or 'there'},\n\n"
        f"Support replied to your ticket \"{_clean(subject_line) or 'Support request'}\" (#{ticket_id}).\n"
        "Sign in to read the reply."
        f"{_footer(org_name)}"
    )
    return EmailParts(subject=subject, body=body)

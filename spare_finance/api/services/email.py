"""
Email Delivery

Outbound transactional email (OTP codes, household invitations).
The default sender writes messages to the log; deployments override
get_email_sender with a provider-backed implementation.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """Rendered email."""

    to: str
    subject: str
    body: str


@dataclass
class EmailSender:
    """Logs outgoing mail and keeps the most recent messages."""

    history_size: int = 50
    sent: List[EmailMessage] = field(default_factory=list)

    async def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage(to=to, subject=subject, body=body)
        self.sent.append(message)
        if len(self.sent) > self.history_size:
            self.sent.pop(0)
        logger.info("Email to %s: %s", to, subject)

    async def send_otp(self, to: str, code: str, purpose: str) -> None:
        subject = (
            "Verify your email" if purpose == "signup" else "Your sign-in code"
        )
        await self.send(to, subject, f"Your Spare Finance code is {code}")

    async def send_invitation(
        self, to: str, household_name: str, token: str, inviter: Optional[str] = None
    ) -> None:
        who = inviter or "A Spare Finance user"
        await self.send(
            to,
            f"You're invited to join {household_name}",
            f"{who} invited you to {household_name}. Invitation token: {token}",
        )


_email_sender: Optional[EmailSender] = None


def get_email_sender() -> EmailSender:
    """Get singleton email sender (FastAPI dependency)."""
    global _email_sender
    if _email_sender is None:
        _email_sender = EmailSender()
    return _email_sender

import asyncio
import logging
import secrets
from dataclasses import dataclass

import aiohttp
from .config import settings

logger = logging.getLogger(__name__)

BREVO_SEND_URL = "https://api.brevo.com/v3/smtp/email"
ACTIVATION_SUBJECT = "FaceLocker Account Activation OTP"


class EmailSendError(Exception):
    pass


def generate_otp() -> str:
    """Generate a 6-digit OTP code, uniform over 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


@dataclass
class EmailMessage:
    to: str
    subject: str
    text: str
    html: str


def render_activation_email(to_email: str, otp_code: str, expire_minutes: int) -> EmailMessage:
    html_body = f"""
    <div style="font-family: Arial, sans-serif; line-height: 1.6;">
        <h2>FaceLocker OTP Verification</h2>
        <p>Hello,</p>
        <p>Your One-Time Password (OTP) for FaceLocker is:</p>
        <p style="font-size: 24px; font-weight: bold; letter-spacing: 2px; color: #007bff;">{otp_code}</p>
        <p>This OTP is valid for {expire_minutes} minutes. Please do not share this code with anyone.</p>
        <p>If you did not request this OTP, please ignore this email.</p>
        <hr/>
        <p style="font-size: 0.9em; color: #555;">This is an automated message. Please do not reply directly to this email.</p>
        <p style="font-size: 0.9em; color: #555;">{settings.EMAIL_FROM_NAME}</p>
    </div>
    """

    text_body = f"""
FaceLocker OTP Verification

Your OTP is: {otp_code}

This code will expire in {expire_minutes} minutes.

If you did not request this, please ignore this email.

---
{settings.EMAIL_FROM_NAME}
    """

    return EmailMessage(to=to_email, subject=ACTIVATION_SUBJECT, text=text_body, html=html_body)


class BrevoEmailDispatcher:
    """Send transactional mail through the Brevo HTTP API.

    Without an API key the dispatcher runs in dev mode and only logs the message.
    """

    def __init__(self, api_key: str = None, from_address: str = None, from_name: str = None, timeout: float = 10.0):
        self.api_key = settings.BREVO_API_KEY if api_key is None else api_key
        self.from_address = from_address or settings.EMAIL_FROM_ADDRESS
        self.from_name = from_name or settings.EMAIL_FROM_NAME
        self.timeout = timeout

    async def send(self, message: EmailMessage) -> str:
        """Send *message*; returns the provider message id. Raises EmailSendError."""
        if not self.api_key:
            logger.warning("[DEV MODE] Email to %s: %s\n%s", message.to, message.subject, message.text)
            return "dev-mode"

        headers = {
            "api-key": self.api_key,
            "Content-Type": "application/json"
        }

        payload = {
            "sender": {
                "name": self.from_name,
                "email": self.from_address
            },
            "to": [{"email": message.to}],
            "subject": message.subject,
            "htmlContent": message.html,
            "textContent": message.text
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(BREVO_SEND_URL, json=payload, headers=headers) as response:
                    result = await response.json(content_type=None)
                    if response.status != 201:
                        raise EmailSendError(f"Brevo API error {response.status}: {result}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise EmailSendError(f"Brevo API unreachable: {e}") from e

        message_id = (result or {}).get("messageId", "unknown")
        logger.info("Email sent to %s, message_id=%s", message.to, message_id)
        return message_id

"""
SMS delivery through the Twilio REST API.

Messages are posted to the Twilio ``Messages`` resource with HTTP Basic
authentication (account SID and auth token).  Indian mobile numbers are
normalised to E.164 (``+91XXXXXXXXXX``) before sending.
"""

import logging
from typing import Dict

import httpx

from home_services_api.app.core.config import settings
from home_services_api.app.core.exceptions import SMSDeliveryError

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class SMSService:
    """Thin wrapper around the Twilio Messages API."""

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number)

    @staticmethod
    def format_phone_number(phone: str) -> str:
        """Normalise a phone number to ``+91`` E.164 form.

        ``9876543210``, ``919876543210`` and ``+919876543210`` all become
        ``+919876543210``.  Anything else raises ``SMSDeliveryError``.
        """
        digits = phone.strip().replace(" ", "").replace("-", "").removeprefix("+")
        if len(digits) == 12 and digits.startswith("91"):
            digits = digits[2:]
        if len(digits) != 10 or not digits.isdigit() or digits[0] not in "6789":
            raise SMSDeliveryError(f"Invalid mobile number: {phone}")
        return f"+91{digits}"

    @classmethod
    def send_sms(cls, phone: str, message: str) -> Dict[str, str]:
        """Send a text message and return Twilio's message SID and status.

        Raises ``SMSDeliveryError`` when Twilio is not configured, the
        number is not an Indian mobile number or the request fails.
        """
        if not cls.is_configured():
            raise SMSDeliveryError("SMS delivery is not configured")
        to = cls.format_phone_number(phone)
        try:
            response = httpx.post(
                TWILIO_API_URL.format(sid=settings.twilio_account_sid),
                data={"To": to, "From": settings.twilio_phone_number, "Body": message},
                auth=(settings.twilio_account_sid, settings.twilio_auth_token),
                timeout=30,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Failed to send SMS to %s: %s", to, exc)
            raise SMSDeliveryError("Failed to send SMS") from exc
        data = response.json()
        logger.info("SMS %s sent to %s", data.get("sid"), to)
        return {"sid": data.get("sid", ""), "status": data.get("status", "")}

    @classmethod
    def send_otp(cls, phone: str, otp: str) -> Dict[str, str]:
        return cls.send_sms(
            phone,
            f"Your {settings.from_name} verification code is {otp}. It is valid for 10 minutes.",
        )

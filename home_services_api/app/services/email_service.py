"""
Transactional e-mail delivery over SMTP.

``EmailService.send_email`` builds a multipart (plain text + HTML)
message and hands it to the SMTP server configured through the
``SMTP_*`` environment variables.  Three transport modes are supported
via ``SMTP_SECURITY``: ``starttls`` (default, port 587), ``ssl``
(implicit TLS, port 465) and ``none``.

Delivery is best effort: when SMTP is not configured, or the server
rejects the message, the failure is logged and ``False`` is returned.
Callers never fail a request because an e-mail could not be sent.

The ``send_*`` helpers below render the marketplace's templates
(verification, password reset, booking updates...).
"""

import html
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Dict, Optional

from home_services_api.app.core.config import settings

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 30


def _layout(title: str, body_html: str) -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
        f"<div style=\"max-width: 600px; margin: 0 auto; padding: 20px;\">"
        f"<h2 style=\"color: #2563eb;\">{html.escape(title)}</h2>"
        f"{body_html}"
        f"<p style=\"color: #888; font-size: 12px;\">{html.escape(settings.from_name)}</p>"
        "</div></body></html>"
    )


def _button(url: str, label: str) -> str:
    return (
        f"<p><a href=\"{html.escape(url, quote=True)}\" style=\"background: #2563eb; color: #fff; "
        f"padding: 10px 18px; border-radius: 4px; text-decoration: none;\">{html.escape(label)}</a></p>"
    )


class EmailService:
    """SMTP e-mail sender and template renderer."""

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.smtp_host)

    @classmethod
    def send_email(cls, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
        """Send one e-mail.

        Parameters
        ----------
        to : str
            Recipient address.
        subject : str
            Subject line.
        html_body : str
            HTML part of the message.
        text_body : Optional[str]
            Plain-text alternative.  Defaults to the subject line.

        Returns
        -------
        bool
            ``True`` when the SMTP server accepted the message.
        """
        if not cls.is_configured():
            logger.warning("SMTP is not configured; e-mail '%s' to %s was not sent", subject, to)
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((settings.from_name, settings.from_email))
        message["To"] = to
        message.set_content(text_body or subject)
        message.add_alternative(html_body, subtype="html")

        security = settings.smtp_security.lower()
        server: Optional[smtplib.SMTP] = None
        try:
            if security == "ssl":
                server = smtplib.SMTP_SSL(
                    settings.smtp_host, settings.smtp_port, timeout=SMTP_TIMEOUT, context=ssl.create_default_context()
                )
            else:
                server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=SMTP_TIMEOUT)
            server.ehlo()
            if security == "starttls":
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if settings.smtp_user and settings.smtp_password:
                server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(message)
            logger.info("E-mail '%s' sent to %s", subject, to)
            return True
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send e-mail '%s' to %s: %s", subject, to, exc)
            return False
        finally:
            if server is not None:
                try:
                    server.quit()
                except (smtplib.SMTPException, OSError):
                    logger.debug("SMTP connection already closed")

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    @classmethod
    def send_verification_email(cls, to: str, name: str, token: str) -> bool:
        url = f"{settings.frontend_url}/verify-email/{token}"
        body = (
            f"<p>Hello {html.escape(name)},</p>"
            "<p>Please confirm your e-mail address to activate all features of your account.</p>"
            f"{_button(url, 'Verify e-mail')}"
            "<p>This link expires in 24 hours.</p>"
        )
        return cls.send_email(to, "Verify your e-mail address", _layout("Verify your e-mail", body), f"Verify: {url}")

    @classmethod
    def send_password_reset_email(cls, to: str, name: str, token: str) -> bool:
        url = f"{settings.frontend_url}/reset-password/{token}"
        body = (
            f"<p>Hello {html.escape(name)},</p>"
            "<p>We received a request to reset your password.</p>"
            f"{_button(url, 'Reset password')}"
            "<p>This link expires in 10 minutes. If you did not ask for a reset, ignore this e-mail.</p>"
        )
        return cls.send_email(to, "Reset your password", _layout("Password reset", body), f"Reset: {url}")

    @classmethod
    def send_welcome_email(cls, to: str, name: str) -> bool:
        body = (
            f"<p>Hello {html.escape(name)},</p>"
            "<p>Welcome aboard! Browse trusted local professionals and book your first service in minutes.</p>"
            f"{_button(settings.frontend_url + '/services', 'Explore services')}"
        )
        return cls.send_email(to, f"Welcome to {settings.from_name}", _layout("Welcome!", body))

    @classmethod
    def send_booking_confirmation(cls, to: str, name: str, booking: Dict[str, Any]) -> bool:
        body = (
            f"<p>Hello {html.escape(name)},</p>"
            f"<p>Your booking <strong>{html.escape(booking['booking_number'])}</strong> has been received.</p>"
            "<ul>"
            f"<li>Service: {html.escape(str(booking.get('service_name') or ''))}</li>"
            f"<li>Scheduled for: {html.escape(str(booking['scheduled_date']))}</li>"
            f"<li>Total: &#8377;{booking['total_amount']}</li>"
            "</ul>"
            f"{_button(settings.frontend_url + '/bookings/' + str(booking['id']), 'View booking')}"
        )
        return cls.send_email(
            to, f"Booking {booking['booking_number']} received", _layout("Booking received", body)
        )

    @classmethod
    def send_booking_status_update(cls, to: str, name: str, booking: Dict[str, Any], status: str) -> bool:
        body = (
            f"<p>Hello {html.escape(name)},</p>"
            f"<p>The status of booking <strong>{html.escape(booking['booking_number'])}</strong> "
            f"is now <strong>{html.escape(status)}</strong>.</p>"
            f"{_button(settings.frontend_url + '/bookings/' + str(booking['id']), 'View booking')}"
        )
        return cls.send_email(
            to, f"Booking {booking['booking_number']} is {status}", _layout("Booking update", body)
        )

    @classmethod
    def send_provider_application_email(cls, to: str, name: str) -> bool:
        body = (
            f"<p>Hello {html.escape(name)},</p>"
            "<p>Thank you for applying as a service provider. Our team will review your profile "
            "and notify you once it is verified.</p>"
        )
        return cls.send_email(to, "Provider application received", _layout("Application received", body))

    @classmethod
    def send_announcement_email(cls, to: str, name: str, title: str, message: str) -> bool:
        body = f"<p>Hello {html.escape(name)},</p><p>{html.escape(message)}</p>"
        return cls.send_email(to, title, _layout(title, body), message)

    @classmethod
    def send_account_status_email(cls, to: str, name: str, is_active: bool, reason: Optional[str] = None) -> bool:
        state = "reactivated" if is_active else "deactivated"
        body = f"<p>Hello {html.escape(name)},</p><p>Your account has been {state}.</p>"
        if reason:
            body += f"<p>Reason: {html.escape(reason)}</p>"
        return cls.send_email(to, f"Your account has been {state}", _layout("Account status", body))

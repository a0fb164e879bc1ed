"""Notification transports: SMTP email and the WhatsApp template API."""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr

import requests

from progress_tracker.config import Settings
from progress_tracker.email_templates import build_email_html, email_subject, whatsapp_template_body
from progress_tracker.models import Channel, NotificationPayload

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Base error for notification delivery."""


class TransportConfigError(NotificationError):
    """Raised when a transport is missing required configuration."""


class TransportUnavailableError(NotificationError):
    """Raised when the transport service cannot be reached at all."""


class DeliveryError(NotificationError):
    """Raised when a single recipient's message is rejected."""


class EmailChannel:
    """Sends one HTML email per recipient over SMTP."""

    channel = Channel.EMAIL
    success_message = "Mail(s) sent successfully!"
    failure_message = "Failed to send mails"

    def __init__(self, settings: Settings):
        self.settings = settings

    def accepts(self, payload: NotificationPayload) -> bool:
        return True

    def recipient(self, payload: NotificationPayload) -> str:
        return payload.email

    def check_configured(self) -> None:
        missing = [
            name
            for name, value in {
                "SMTP_HOST": self.settings.smtp_host,
                "MAIL_FROM": self.settings.mail_from,
            }.items()
            if not value
        ]
        if missing:
            raise TransportConfigError(
                f"Missing email configuration: {', '.join(missing)}"
            )

    def build_message(self, payload: NotificationPayload) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.settings.mail_from_name, self.settings.mail_from))
        message["To"] = payload.email
        message["Subject"] = email_subject(self.settings)
        message.set_content(build_email_html(payload, self.settings), subtype="html", charset="utf-8")
        return message

    def _send_message(self, message: EmailMessage) -> None:
        try:
            client = smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=30)
        except OSError as exc:
            raise TransportUnavailableError(f"SMTP server unreachable: {exc}") from exc

        try:
            with client:
                if self.settings.smtp_use_tls:
                    client.starttls(context=ssl.create_default_context())
                if self.settings.smtp_username:
                    client.login(self.settings.smtp_username, self.settings.smtp_password)
                client.send_message(message)
        except smtplib.SMTPException as exc:
            raise DeliveryError(f"SMTP rejected message to {message['To']}: {exc}") from exc

    async def send(self, payload: NotificationPayload) -> None:
        message = self.build_message(payload)
        await asyncio.to_thread(self._send_message, message)


class WhatsAppChannel:
    """Posts one templated WhatsApp message per recipient."""

    channel = Channel.WHATSAPP
    success_message = "WhatsApp message(s) sent successfully!"
    failure_message = "Failed to send WhatsApp message(s)"

    def __init__(self, settings: Settings):
        self.settings = settings

    def accepts(self, payload: NotificationPayload) -> bool:
        return bool((payload.phone or '').strip())

    def recipient(self, payload: NotificationPayload) -> str:
        return str(payload.phone or '')

    def check_configured(self) -> None:
        missing = [
            name
            for name, value in {
                "WHATSAPP_API_URL": self.settings.whatsapp_api_url,
                "WHATSAPP_API_TOKEN": self.settings.whatsapp_api_token,
            }.items()
            if not value
        ]
        if missing:
            raise TransportConfigError(
                f"Missing WhatsApp configuration: {', '.join(missing)}"
            )

    def _post(self, body: dict) -> requests.Response:
        try:
            return requests.post(
                self.settings.whatsapp_api_url,
                json=body,
                headers={
                    "Authorization": f"Bearer {self.settings.whatsapp_api_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.settings.whatsapp_timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransportUnavailableError(f"WhatsApp API unreachable: {exc}") from exc
        except requests.RequestException as exc:
            raise DeliveryError(str(exc)) from exc

    async def send(self, payload: NotificationPayload) -> None:
        body = whatsapp_template_body(payload, self.settings)
        response = await asyncio.to_thread(self._post, body)
        logger.info("WhatsApp API status for %s: %s", payload.phone, response.status_code)
        if not 200 <= response.status_code < 300:
            raise DeliveryError(
                f"WhatsApp HTTP {response.status_code}: {response.text!r}"
            )


def get_channel(channel: Channel, settings: Settings):
    if channel == Channel.EMAIL:
        return EmailChannel(settings)
    return WhatsAppChannel(settings)

"""Shared fixtures: settings and fake notification channels."""

import asyncio

import pytest

from progress_tracker.config import Settings
from progress_tracker.models import Channel, ThresholdConfig


class FakeChannel:
    """In-memory stand-in for EmailChannel/WhatsAppChannel."""

    success_message = "Fake message(s) sent successfully!"
    failure_message = "Failed to send fake messages"

    def __init__(self, channel=Channel.EMAIL, fail_for=(), errors=None, config_error=None):
        self.channel = channel
        self.fail_for = set(fail_for)
        self.errors = errors or {}
        self.config_error = config_error
        self.sent = []
        self.attempted = []

    def accepts(self, payload):
        if self.channel == Channel.WHATSAPP:
            return bool((payload.phone or '').strip())
        return True

    def recipient(self, payload):
        return payload.phone if self.channel == Channel.WHATSAPP else payload.email

    def check_configured(self):
        if self.config_error is not None:
            raise self.config_error

    async def send(self, payload):
        recipient = self.recipient(payload)
        self.attempted.append(recipient)
        await asyncio.sleep(0)
        if recipient in self.errors:
            raise self.errors[recipient]
        if recipient in self.fail_for:
            raise RuntimeError(f"rejected {recipient}")
        self.sent.append(recipient)


@pytest.fixture
def thresholds():
    return ThresholdConfig(no_progress=4, in_progress=10)


@pytest.fixture
def settings(thresholds):
    return Settings(
        thresholds=thresholds,
        smtp_host="smtp.example.com",
        smtp_username="reports@example.com",
        smtp_password="secret",
        mail_from="reports@example.com",
        whatsapp_api_url="https://wa.example.com/send-template",
        whatsapp_api_token="token-123",
    )


@pytest.fixture
def fake_channel_cls():
    return FakeChannel

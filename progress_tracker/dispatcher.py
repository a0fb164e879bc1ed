"""Bulk notification dispatch with per-recipient failure isolation."""

import asyncio
import logging
from typing import Iterable, List

from progress_tracker.channels import TransportConfigError, TransportUnavailableError
from progress_tracker.models import (
    DispatchResult,
    NotificationPayload,
    RecipientOutcome,
    SessionDates,
    StudentRecord,
)

logger = logging.getLogger(__name__)

NO_VALID_RECIPIENTS = (
    "No valid candidates to send to. Check for missing phone numbers for WhatsApp."
)


def build_payload(record: StudentRecord, dates: SessionDates) -> NotificationPayload:
    """Project a record and the session dates into a notification payload."""
    return NotificationPayload(
        name=record.name,
        email=record.email,
        phone=record.phone,
        status=record.status.value,
        chapter_completion=f"{record.completed_chapters}/{record.total_chapters}",
        total_chapters=record.total_chapters,
        marks_obtained=record.marks,
        max_marks=record.max_marks,
        skipped_questions=record.skipped,
        ocs1_status=record.ocs1,
        ocs2_status=record.ocs2,
        ocs1_date=dates.ocs1,
        ocs2_date=dates.ocs2,
    )


async def _send_one(channel, payload: NotificationPayload) -> RecipientOutcome:
    recipient = channel.recipient(payload)
    logger.info("Sending %s to %s (%s)", channel.channel.value, recipient, payload.name)
    try:
        await channel.send(payload)
    except TransportUnavailableError as exc:
        logger.error("Transport unavailable for %s: %s", recipient, exc)
        return RecipientOutcome(recipient=recipient, name=payload.name, ok=False, error=str(exc), fatal=True)
    except Exception as exc:
        logger.warning("Failed to send %s to %s: %s", channel.channel.value, recipient, exc)
        return RecipientOutcome(recipient=recipient, name=payload.name, ok=False, error=str(exc))

    logger.info("Sent %s to %s", channel.channel.value, recipient)
    return RecipientOutcome(recipient=recipient, name=payload.name, ok=True)


async def dispatch_payloads(payloads: Iterable[NotificationPayload], channel) -> DispatchResult:
    """
    Send one message per eligible payload concurrently and aggregate outcomes.

    Args:
        payloads: Per-recipient payloads
        channel: Transport adapter (EmailChannel, WhatsAppChannel or compatible)

    Returns:
        DispatchResult; `ok` stays True unless there was nobody to send to,
        the transport is not configured, or every recipient hit an
        unreachable transport
    """
    payloads = list(payloads)
    eligible = [payload for payload in payloads if channel.accepts(payload)]
    skipped = len(payloads) - len(eligible)
    if skipped:
        logger.warning("Skipping %d recipient(s) not reachable via %s", skipped, channel.channel.value)

    if not eligible:
        return DispatchResult(ok=False, message=NO_VALID_RECIPIENTS, channel=channel.channel, skipped=skipped)

    try:
        channel.check_configured()
    except TransportConfigError as exc:
        logger.error("%s: %s", channel.failure_message, exc)
        return DispatchResult(
            ok=False,
            message=f"{channel.failure_message}: {exc}",
            channel=channel.channel,
            skipped=skipped,
        )

    outcomes: List[RecipientOutcome] = list(
        await asyncio.gather(*(_send_one(channel, payload) for payload in eligible))
    )

    result = DispatchResult(
        ok=True,
        message=channel.success_message,
        channel=channel.channel,
        outcomes=outcomes,
        skipped=skipped,
    )
    if all(not outcome.ok and outcome.fatal for outcome in outcomes):
        result.ok = False
        result.message = f"{channel.failure_message}: {outcomes[0].error}"

    logger.info(
        "%s dispatch finished: %d sent, %d failed, %d skipped",
        channel.channel.value,
        result.sent,
        result.failed,
        skipped,
    )
    return result


async def dispatch(records: Iterable[StudentRecord], channel, dates: SessionDates) -> DispatchResult:
    """Build payloads for the selected records and dispatch them."""
    return await dispatch_payloads(
        (build_payload(record, dates) for record in records),
        channel,
    )

"""Email and WhatsApp template generation for progress reports."""

from html import escape
from typing import Dict, List

from progress_tracker.config import Settings
from progress_tracker.models import NotificationPayload, Status

_KEEP_GOING = (
    "We appreciate the effort you are putting in, and we kindly request you to expedite "
    "the completion of the lectures within the allocated timeframe. We would like to hear "
    "about any difficulties or challenges you may be facing."
)

STATUS_MESSAGES: Dict[str, str] = {
    Status.COMPLETED.value: (
        "Congratulations, we sincerely appreciate the dedication you have shown in completing "
        "the courses. We encourage you to continue with your efforts."
    ),
    Status.IN_PROGRESS.value: _KEEP_GOING,
    Status.NO_PROGRESS.value: _KEEP_GOING,
}

ATTENDANCE_REMINDER = (
    "Kindly request you to attend all the Online-Contact-Sessions which is a mandatory "
    "and essential part of your course."
)


def missed_session(payload: NotificationPayload) -> bool:
    """True if either OCS status reads 'not attended'."""
    return any(
        (status or '').strip().lower() == "not attended"
        for status in (payload.ocs1_status, payload.ocs2_status)
    )


def ocs_line(number: int, date: str, status: str) -> str:
    return f"OCS {number} ({date or 'N/A'}) : {status}"


def email_subject(settings: Settings) -> str:
    return f"Your Learners Report - {settings.report_period.upper()}"


def build_email_html(payload: NotificationPayload, settings: Settings) -> str:
    """Render the monthly progress report for one student."""
    e = escape
    status_message = STATUS_MESSAGES.get(payload.status, "")

    ocs_section = (
        f"<p><b>OCS 1 ({e(payload.ocs1_date or 'N/A')}):</b> {e(payload.ocs1_status)}</p>\n"
        f"<p><b>OCS 2 ({e(payload.ocs2_date or 'N/A')}):</b> {e(payload.ocs2_status)}</p>\n"
    )
    if missed_session(payload):
        ocs_section += f"<p>{ATTENDANCE_REMINDER}</p>\n"

    return f"""<h3>Dear {e(payload.name)},</h3>
<br>
<p>Greetings from {e(settings.organization_name)} - {e(settings.course_name)}.</p>
<p>Please find the below-mentioned table of your progress for the month of {e(settings.report_period)}.</p>
<p><b>Chapter Completion:</b> {e(payload.chapter_completion)}</p>
<p><b>Assessment:</b> {payload.marks_obtained}/{payload.max_marks}</p>
{ocs_section}<p><b>Status:</b> {e(payload.status)}</p>
<p>{status_message}</p>
<p>For Technical and Academic challenges please contact - {e(settings.support_contact)}.</p>
<p>Note: We request you to rename yourself to your registered name during online sessions to ensure your attendance is marked correctly.</p>
<p><b>Note</b>:<li>Step 1 | Finish Viewing the Video on your Media Player.</li>
<li>Step 2 | Click on the "Complete &amp; Continue" button located at the Bottom Right of the media player. (On some devices, you might find this option under the 3 dots Menu button at the Top Right of the media player).</li>
<p>Kindly Ignore the above message if already done.</p>
<br>
<p>Thanks and Regards,</p>
<p>{e(settings.mail_from_name)}</p>
"""


def whatsapp_parameters(payload: NotificationPayload, settings: Settings) -> List[str]:
    """Positional values bound to the registered report template."""
    return [
        payload.name,
        payload.chapter_completion,
        str(payload.marks_obtained),
        str(payload.max_marks),
        str(payload.skipped_questions),
        ocs_line(1, payload.ocs1_date, payload.ocs1_status),
        ocs_line(2, payload.ocs2_date, payload.ocs2_status),
        payload.status,
        settings.report_period,
    ]


def whatsapp_template_body(payload: NotificationPayload, settings: Settings) -> Dict:
    """JSON body for the WhatsApp template endpoint."""
    return {
        'to': str(payload.phone),
        'name': settings.whatsapp_template,
        'components': [
            {
                'type': 'body',
                'parameters': [
                    {'type': 'text', 'text': text}
                    for text in whatsapp_parameters(payload, settings)
                ],
            }
        ],
    }

"""Progress status classification against configurable chapter thresholds."""

import logging
from typing import Dict, Iterable, List

from progress_tracker.models import Status, StudentRecord, ThresholdConfig

logger = logging.getLogger(__name__)


def get_status(completed_chapters: int, thresholds: ThresholdConfig) -> Status:
    """
    Classify a completed-chapter count into a progress status.

    Args:
        completed_chapters: Number of chapters the student has completed
        thresholds: Chapter cut-offs for 'No Progress' and 'In Progress'

    Returns:
        Status (first matching rule wins)
    """
    if completed_chapters < thresholds.no_progress:
        return Status.NO_PROGRESS
    elif completed_chapters < thresholds.in_progress:
        return Status.IN_PROGRESS
    else:
        return Status.COMPLETED


def check_thresholds(thresholds: ThresholdConfig) -> bool:
    """
    Report whether thresholds follow the expected ordering.

    An inverted pair is still accepted; the 'In Progress' band is then empty.
    """
    if thresholds.no_progress > thresholds.in_progress:
        logger.warning(
            "Threshold no_progress=%d exceeds in_progress=%d; 'In Progress' is unreachable",
            thresholds.no_progress,
            thresholds.in_progress,
        )
        return False
    return True


def reclassify(records: Iterable[StudentRecord], thresholds: ThresholdConfig) -> List[StudentRecord]:
    """
    Re-derive the status of every record for new thresholds.

    Returns new records; only `status` differs from the input.
    """
    return [
        record.model_copy(update={'status': get_status(record.completed_chapters, thresholds)})
        for record in records
    ]


def summarize(records: Iterable[StudentRecord]) -> Dict[str, int]:
    """Count records per status."""
    summary = {status.value: 0 for status in Status}
    total = 0
    for record in records:
        summary[record.status.value] += 1
        total += 1
    summary['Total'] = total
    return summary

"""In-memory operator session: roster, thresholds, dates and selection."""

import logging
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Set

from progress_tracker.models import SessionDates, StudentRecord, StudentRecordInput, ThresholdConfig
from progress_tracker.parsers import RawRow, build_record, process_rows
from progress_tracker.status import check_thresholds, reclassify, summarize

logger = logging.getLogger(__name__)


class SessionBusyError(RuntimeError):
    """Raised when a dispatch is triggered while another is in flight."""


class RosterSession:
    """
    Holds the records of one upload for the lifetime of the process.

    Records are only ever replaced whole: bulk on load and on threshold
    change, one at a time on edit.
    """

    def __init__(self, thresholds: Optional[ThresholdConfig] = None):
        self.thresholds = thresholds or ThresholdConfig()
        self.records: List[StudentRecord] = []
        self.session_dates = SessionDates()
        self.file_name: Optional[str] = None
        self.selected_ids: Set[str] = set()
        self.is_sending = False

    def load(self, rows: Iterable[RawRow], file_name: Optional[str] = None) -> List[StudentRecord]:
        return self.replace(process_rows(rows, self.thresholds), file_name)

    def replace(self, records: List[StudentRecord], file_name: Optional[str] = None) -> List[StudentRecord]:
        """Swap in a freshly normalized roster and clear the selection."""
        self.records = list(records)
        self.file_name = file_name
        self.selected_ids = set()
        logger.info("Loaded %d record(s) from %s", len(self.records), file_name or "manual entry")
        return self.records

    def set_thresholds(self, thresholds: ThresholdConfig) -> List[StudentRecord]:
        check_thresholds(thresholds)
        self.thresholds = thresholds
        self.records = reclassify(self.records, thresholds)
        logger.info("Reclassified %d record(s) with %s", len(self.records), thresholds)
        return self.records

    def set_session_dates(self, dates: SessionDates) -> None:
        self.session_dates = dates

    def get(self, record_id: str) -> StudentRecord:
        for record in self.records:
            if record.id == record_id:
                return record
        raise KeyError(record_id)

    def add(self, form: StudentRecordInput) -> StudentRecord:
        record = build_record(form, self.thresholds)
        self.records = [*self.records, record]
        return record

    def update(self, record_id: str, form: StudentRecordInput) -> StudentRecord:
        """Replace a record whole; raises KeyError for an unknown id."""
        self.get(record_id)
        record = build_record(form, self.thresholds, record_id=record_id)
        self.records = [record if r.id == record_id else r for r in self.records]
        return record

    def reset(self) -> None:
        """Discard the upload; thresholds survive."""
        logger.info("Resetting session (%d record(s))", len(self.records))
        self.records = []
        self.file_name = None
        self.selected_ids = set()
        self.session_dates = SessionDates()

    def toggle(self, record_id: str) -> bool:
        """Flip selection of one record; returns the new state."""
        self.get(record_id)
        if record_id in self.selected_ids:
            self.selected_ids.discard(record_id)
            return False
        self.selected_ids.add(record_id)
        return True

    def select_all(self) -> Set[str]:
        """Select every record, or clear the selection if all are selected."""
        if self.records and len(self.selected_ids) == len(self.records):
            self.selected_ids = set()
        else:
            self.selected_ids = {record.id for record in self.records}
        return self.selected_ids

    def selected_records(self, ids: Optional[Iterable[str]] = None) -> List[StudentRecord]:
        wanted = set(ids) if ids is not None else self.selected_ids
        return [record for record in self.records if record.id in wanted]

    @property
    def has_ocs3(self) -> bool:
        return any(record.ocs3 for record in self.records)

    def summary(self) -> Dict[str, int]:
        return summarize(self.records)

    @contextmanager
    def sending(self) -> Iterator[None]:
        if self.is_sending:
            raise SessionBusyError("A dispatch is already in progress")
        self.is_sending = True
        try:
            yield
        finally:
            self.is_sending = False

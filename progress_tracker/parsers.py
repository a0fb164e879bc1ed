"""Spreadsheet parsing and row normalization."""

import logging
import re
import time
from io import BytesIO
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from progress_tracker.models import StudentRecord, StudentRecordInput, ThresholdConfig
from progress_tracker.status import get_status

logger = logging.getLogger(__name__)

RawRow = Mapping[str, Any]

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls", ".csv")

NOT_AVAILABLE = "N/A"

_KEY_NOISE = re.compile(r"[\s_]")


class SpreadsheetError(ValueError):
    """Raised when an uploaded file cannot be read as a table of rows."""


def normalize_key(key: Any) -> str:
    """
    Normalize a column header for matching.

    Lower-cases and strips every whitespace character and underscore, so
    'Completed Chapters', 'completed_chapters' and 'CompletedChapters ' all
    collapse to 'completedchapters'.
    """
    return _KEY_NOISE.sub('', str(key).lower())


def get_value(row: RawRow, target_key: str) -> Any:
    """
    Look up a logical field in a loosely keyed row.

    Args:
        row: Mapping from raw spreadsheet headers to cell values
        target_key: Logical field name, e.g. 'CompletedChapters'

    Returns:
        Value of the first key whose normalized form matches, or None
    """
    wanted = normalize_key(target_key)
    for key, value in row.items():
        if normalize_key(key) == wanted:
            return value
    return None


def is_missing(value: Any) -> bool:
    """True for None, NaN/NaT and blank strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_text(value: Any) -> Optional[str]:
    """
    Convert a cell value to trimmed text, or None if missing.

    Whole floats lose their '.0' so phone numbers read from Excel survive.
    """
    if is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def to_number(value: Any, default: int = 0) -> int:
    """
    Coerce a cell value to a non-negative integer.

    Missing, zero, non-numeric and non-finite values fall back to `default`.
    Fractions are truncated and negatives clamp to 0.
    """
    if is_missing(value):
        return default
    try:
        if isinstance(value, str):
            val = float(value.strip())
        else:
            val = float(value)
    except (ValueError, TypeError):
        return default

    if not np.isfinite(val) or val == 0:
        return default
    return max(int(val), 0)


def _total_chapters(row: RawRow) -> int:
    """Primary column, then the alternate spelling, then 1."""
    total = to_number(get_value(row, "TotalChapers"))
    if total == 0:
        # the fallback total is at least 1
        total = max(to_number(get_value(row, "Total Chapters"), default=1), 1)
    return total


def normalize_row(
    row: RawRow,
    index: int,
    thresholds: ThresholdConfig,
    timestamp: int
) -> Optional[StudentRecord]:
    """
    Turn one raw row into a StudentRecord.

    Returns None when the row has neither a name nor an email.
    """
    name = to_text(get_value(row, "Name"))
    email = to_text(get_value(row, "Email"))
    if not name and not email:
        return None

    completed = to_number(get_value(row, "CompletedChapters"))
    ocs3 = get_value(row, "OCS3")
    if isinstance(ocs3, str):
        ocs3 = ocs3.strip()
    else:
        ocs3 = to_text(ocs3)

    return StudentRecord(
        id=f"{email or name}-{timestamp}-{index}",
        name=name or NOT_AVAILABLE,
        email=email or NOT_AVAILABLE,
        phone=to_text(get_value(row, "phone")) or '',
        completed_chapters=completed,
        total_chapters=_total_chapters(row),
        marks=to_number(get_value(row, "Marks")),
        max_marks=to_number(get_value(row, "MaxMarks")),
        skipped=to_number(get_value(row, "Skipped")),
        ocs1=to_text(get_value(row, "OCS1")) or NOT_AVAILABLE,
        ocs2=to_text(get_value(row, "OCS2")) or NOT_AVAILABLE,
        ocs3=ocs3,
        status=get_status(completed, thresholds),
    )


def process_rows(
    rows: Iterable[RawRow],
    thresholds: ThresholdConfig,
    timestamp: Optional[int] = None
) -> List[StudentRecord]:
    """
    Normalize raw spreadsheet rows into classified student records.

    Args:
        rows: Raw rows keyed by original spreadsheet headers
        thresholds: Status thresholds used for classification
        timestamp: Ingestion time in milliseconds (defaults to now)

    Returns:
        Records in input order, minus rows lacking both name and email
    """
    if timestamp is None:
        timestamp = int(time.time() * 1000)

    records = []
    dropped = 0
    for index, row in enumerate(rows):
        record = normalize_row(row, index, thresholds, timestamp)
        if record is None:
            dropped += 1
            continue
        records.append(record)

    if dropped:
        logger.debug("Dropped %d row(s) without name or email", dropped)
    logger.info("Normalized %d student record(s)", len(records))
    return records


def build_record(
    form: StudentRecordInput,
    thresholds: ThresholdConfig,
    record_id: Optional[str] = None,
    timestamp: Optional[int] = None
) -> StudentRecord:
    """
    Build a full record from an operator add/edit form.

    Editing keeps `record_id`; a new record gets '{email}-{timestamp}',
    or the name when no email was given. Blank name and email fields are
    stored as 'N/A' and a blank ocs3 is dropped.
    """
    name = form.name.strip()
    email = form.email.strip()
    if record_id is None:
        if timestamp is None:
            timestamp = int(time.time() * 1000)
        record_id = f"{email or name}-{timestamp}"

    data = form.model_dump()
    data['name'] = name or NOT_AVAILABLE
    data['email'] = email or NOT_AVAILABLE
    ocs3 = (data.get('ocs3') or '').strip()
    data['ocs3'] = ocs3 or None

    return StudentRecord(
        id=record_id,
        status=get_status(form.completed_chapters, thresholds),
        **data,
    )


def load_rows(file_bytes: bytes, filename: str = "") -> List[Dict[str, Any]]:
    """
    Read the first worksheet of an upload into raw rows.

    Headers are trimmed and empty cells are left out of each row, so an
    empty cell behaves exactly like a missing column.

    Args:
        file_bytes: Raw bytes of the uploaded file
        filename: Original file name, used to pick the reader

    Returns:
        List of header -> value dicts

    Raises:
        SpreadsheetError: if the file cannot be parsed
    """
    try:
        name = filename.lower()
        if name.endswith(".csv"):
            df = pd.read_csv(BytesIO(file_bytes), dtype=str)
        elif name.endswith(".xls"):
            df = pd.read_excel(BytesIO(file_bytes), sheet_name=0, engine="xlrd")
        else:
            df = pd.read_excel(BytesIO(file_bytes), sheet_name=0, engine="openpyxl")
    except Exception as e:
        logger.error("Could not parse upload %r: %s", filename, e)
        raise SpreadsheetError(f"Could not parse {filename or 'upload'}: {e}") from e

    df.columns = [str(col).strip() for col in df.columns]

    rows = []
    for record in df.to_dict(orient="records"):
        rows.append({
            key: value
            for key, value in record.items()
            if not pd.isna(value)
        })

    logger.info("Loaded %d row(s) with columns %s", len(rows), list(df.columns))
    return rows

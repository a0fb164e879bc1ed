"""FastAPI main application for Student Progress Tracker."""

import csv
import logging
import traceback
from io import StringIO

from fastapi import FastAPI, File, UploadFile, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from progress_tracker.channels import get_channel
from progress_tracker.config import Settings
from progress_tracker.dispatcher import NO_VALID_RECIPIENTS, dispatch, dispatch_payloads
from progress_tracker.models import (
    Channel,
    DispatchResult,
    LegacySendRequest,
    RosterResponse,
    SendRequest,
    SessionDates,
    StudentRecord,
    StudentRecordInput,
    ThresholdConfig,
    UploadResponse,
)
from progress_tracker.parsers import SPREADSHEET_EXTENSIONS, SpreadsheetError, load_rows, process_rows
from progress_tracker.session import RosterSession, SessionBusyError

settings = Settings.from_env()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Progress Tracker", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

PARSE_ERROR_MESSAGE = "Failed to parse the file. Please check the format and column names."


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON."""
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    logger.exception("Unhandled error on %s", request.url.path)
    error_detail = str(exc)
    if settings.debug:
        error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {error_detail}",
            "type": type(exc).__name__
        }
    )


# In-memory session (no persistence)
session = RosterSession(settings.thresholds)


def roster_response() -> RosterResponse:
    return RosterResponse(
        file_name=session.file_name,
        results=session.records,
        summary=session.summary(),
        thresholds=session.thresholds,
        session_dates=session.session_dates,
        selected_ids=sorted(session.selected_ids),
        has_ocs3=session.has_ocs3,
    )


def dispatch_status_code(result: DispatchResult) -> int:
    if result.ok:
        return 200
    if result.message == NO_VALID_RECIPIENTS:
        return 400
    return 502


@app.get("/", response_class=HTMLResponse)
async def root():
    """Serve a minimal landing page."""
    return HTMLResponse(
        content="<h1>Student Progress Tracker</h1>"
        "<p>Upload a single Excel sheet to generate, manage, and track student reports.</p>"
    )


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={"status": "ok", "message": "Server is running"})


@app.post("/upload", response_model=UploadResponse, response_model_exclude_none=True)
async def upload_file(file: UploadFile = File(...)):
    """Upload and normalize the single-sheet student file."""
    file_bytes = await file.read()
    if len(file_bytes) > settings.max_upload_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {settings.max_upload_size_mb}MB"
        )

    filename = file.filename or ""
    if not filename.lower().endswith(SPREADSHEET_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Please upload an Excel (.xlsx, .xls) or CSV file"
        )

    try:
        rows = load_rows(file_bytes, filename)
    except SpreadsheetError:
        raise HTTPException(status_code=400, detail=PARSE_ERROR_MESSAGE)

    records = process_rows(rows, session.thresholds)
    if not records:
        raise HTTPException(status_code=400, detail="No student records found in the uploaded file.")

    session.replace(records, filename)
    summary = session.summary()

    logger.info(
        "Results: %d students (%d Completed, %d In Progress, %d No Progress)",
        summary['Total'],
        summary['Completed'],
        summary['In Progress'],
        summary['No Progress'],
    )

    return UploadResponse(
        success=True,
        message=f"Successfully processed {len(records)} students",
        file_name=filename,
        results=records,
        summary=summary
    )


@app.get("/students", response_model=RosterResponse, response_model_exclude_none=True)
async def get_students():
    """Get the current roster."""
    return roster_response()


@app.post("/students", response_model=StudentRecord, response_model_exclude_none=True)
async def add_student(form: StudentRecordInput):
    """Add a student by hand."""
    return session.add(form)


@app.put("/students/{record_id}", response_model=StudentRecord, response_model_exclude_none=True)
async def update_student(record_id: str, form: StudentRecordInput):
    """Replace a student record."""
    try:
        return session.update(record_id, form)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Student {record_id} not found")


@app.put("/thresholds", response_model=RosterResponse, response_model_exclude_none=True)
async def set_thresholds(thresholds: ThresholdConfig):
    """Change status thresholds and reclassify every record."""
    session.set_thresholds(thresholds)
    return roster_response()


@app.put("/session-dates", response_model=SessionDates)
async def set_session_dates(dates: SessionDates):
    """Set the OCS dates quoted in notifications."""
    session.set_session_dates(dates)
    return session.session_dates


@app.post("/selection/all")
async def toggle_select_all():
    """Select all records, or deselect all if everything is selected."""
    selected = session.select_all()
    return {"selected_ids": sorted(selected)}


@app.post("/selection/{record_id}")
async def toggle_selection(record_id: str):
    """Toggle selection of one record."""
    try:
        selected = session.toggle(record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Student {record_id} not found")
    return {"id": record_id, "selected": selected, "selected_ids": sorted(session.selected_ids)}


@app.post("/reset")
async def reset_session():
    """Discard the uploaded roster."""
    session.reset()
    return {"message": "Session reset"}


@app.post("/send")
async def send_notifications(request: SendRequest):
    """Dispatch notifications to the given ids, or to the current selection."""
    records = session.selected_records(request.ids)
    if not records:
        raise HTTPException(status_code=400, detail="No candidates selected to send.")

    try:
        with session.sending():
            result = await dispatch(records, get_channel(request.channel, settings), session.session_dates)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return JSONResponse(
        status_code=dispatch_status_code(result),
        content=result.model_dump(mode="json")
    )


async def _legacy_send(request: LegacySendRequest, channel: Channel) -> JSONResponse:
    if not request.candidates:
        return JSONResponse(status_code=400, content={"error": "Candidates array is required"})

    result = await dispatch_payloads(request.candidates, get_channel(channel, settings))
    outcomes = [outcome.model_dump(mode="json") for outcome in result.outcomes]
    if result.ok:
        return JSONResponse(content={"message": result.message, "outcomes": outcomes})
    return JSONResponse(
        status_code=400 if result.message == NO_VALID_RECIPIENTS else 500,
        content={"error": result.message, "outcomes": outcomes}
    )


@app.post("/send-mails")
async def send_mails(request: LegacySendRequest):
    """Send report emails for pre-built payloads."""
    return await _legacy_send(request, Channel.EMAIL)


@app.post("/send-whatsapp")
async def send_whatsapp(request: LegacySendRequest):
    """Send WhatsApp reports for pre-built payloads."""
    return await _legacy_send(request, Channel.WHATSAPP)


@app.get("/download.csv")
async def download_csv():
    """Download the current roster as CSV."""
    if not session.records:
        raise HTTPException(status_code=404, detail="No results available")

    output = StringIO()
    writer = csv.writer(output)

    writer.writerow([
        'ID',
        'Name',
        'Email',
        'Phone',
        'Completed Chapters',
        'Total Chapters',
        'Marks',
        'Max Marks',
        'Skipped',
        'OCS1',
        'OCS2',
        'OCS3',
        'Status'
    ])

    for record in session.records:
        writer.writerow([
            record.id,
            record.name,
            record.email,
            record.phone,
            record.completed_chapters,
            record.total_chapters,
            record.marks,
            record.max_marks,
            record.skipped,
            record.ocs1,
            record.ocs2,
            record.ocs3 or '',
            record.status.value
        ])

    output.seek(0)
    stem = (session.file_name or "students").rsplit('.', 1)[0]

    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={stem}_progress.csv"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

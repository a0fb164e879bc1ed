"""API tests for the FastAPI application."""

import pytest
from fastapi.testclient import TestClient

from progress_tracker import main
from progress_tracker.dispatcher import NO_VALID_RECIPIENTS
from progress_tracker.models import Channel, ThresholdConfig
from progress_tracker.session import RosterSession

CSV = (
    "Name,Email,Phone,Completed Chapters,TotalChapers,Total Chapters,Marks,MaxMarks,Skipped,OCS1,OCS2\n"
    "Jane Doe,jane@example.com,+15550001,4,0,15,35,50,2,Attended,Not Attended\n"
    "Bob Roe,bob@example.com,,12,20,,40,50,0,Attended,Attended\n"
    ",,,3,,,,,,,\n"
).encode("utf-8")


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main, "session", RosterSession(ThresholdConfig(no_progress=4, in_progress=10)))
    return TestClient(main.app)


@pytest.fixture
def channels(monkeypatch, fake_channel_cls):
    created = {}

    def fake_get_channel(channel, settings):
        created[channel] = fake_channel_cls(channel)
        return created[channel]

    monkeypatch.setattr(main, "get_channel", fake_get_channel)
    return created


def _upload(client, data=CSV, filename="august.csv"):
    return client.post("/upload", files={"file": (filename, data, "text/csv")})


def test_health(client):
    """Health check responds."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_upload(client):
    """Upload normalizes and classifies rows."""
    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["file_name"] == "august.csv"
    assert [r["name"] for r in body["results"]] == ["Jane Doe", "Bob Roe"]
    jane, bob = body["results"]
    assert jane["total_chapters"] == 15
    assert jane["status"] == "In Progress"
    assert jane["phone"] == "+15550001"
    assert "ocs3" not in jane
    assert bob["status"] == "Completed"
    assert body["summary"] == {"Completed": 1, "In Progress": 1, "No Progress": 0, "Total": 2}


def test_upload_rejects_bad_files(client):
    """Wrong type and unparseable files are rejected whole."""
    response = _upload(client, filename="notes.txt")
    assert response.status_code == 400
    assert "Invalid file type" in response.json()["detail"]

    response = _upload(client, data=b"not a workbook", filename="students.xlsx")
    assert response.status_code == 400
    assert response.json()["detail"] == main.PARSE_ERROR_MESSAGE

    response = _upload(client, data=b"not a workbook", filename="students.xls")
    assert response.status_code == 400
    assert response.json()["detail"] == main.PARSE_ERROR_MESSAGE
    assert main.session.records == []


def test_upload_without_students(client):
    """A sheet with no usable rows is reported."""
    response = _upload(client, data=b"Marks,Skipped\n3,1\n")
    assert response.status_code == 400
    assert "No student records" in response.json()["detail"]


def test_thresholds_reclassify(client):
    """Changing thresholds reclassifies the roster."""
    _upload(client)

    response = client.put("/thresholds", json={"no_progress": 2, "in_progress": 4})

    assert response.status_code == 200
    body = response.json()
    assert [r["status"] for r in body["results"]] == ["Completed", "Completed"]
    assert body["thresholds"] == {"no_progress": 2, "in_progress": 4}


def test_add_and_edit_student(client):
    """Operator can add and replace records."""
    _upload(client)

    added = client.post("/students", json={"name": "Zed", "email": "zed@example.com", "completed_chapters": 1, "ocs3": " "})
    assert added.status_code == 200
    assert added.json()["status"] == "No Progress"
    assert "ocs3" not in added.json()

    record_id = added.json()["id"]
    edited = client.put(f"/students/{record_id}", json={"name": "Zed", "email": "zed@example.com", "completed_chapters": 11, "ocs3": "Attended"})
    assert edited.status_code == 200
    assert edited.json()["id"] == record_id
    assert edited.json()["ocs3"] == "Attended"

    roster = client.get("/students").json()
    assert len(roster["results"]) == 3
    assert roster["has_ocs3"] is True

    missing = client.put("/students/nope", json={"name": "X"})
    assert missing.status_code == 404


def test_add_student_rejects_invalid_forms(client):
    """Records without a name or email, or with negative counts, are refused."""
    _upload(client)

    assert client.post("/students", json={}).status_code == 422
    assert client.post("/students", json={"name": "  ", "email": ""}).status_code == 422
    negative = client.post("/students", json={"name": "Zed", "completed_chapters": -5, "total_chapters": -1})
    assert negative.status_code == 422

    record_id = client.get("/students").json()["results"][0]["id"]
    assert client.put(f"/students/{record_id}", json={"email": " "}).status_code == 422
    assert len(client.get("/students").json()["results"]) == 2


def test_send_to_selection(client, channels):
    """Dispatch goes to the selected records with the session dates."""
    records = _upload(client).json()["results"]
    client.put("/session-dates", json={"ocs1": "2025-08-02", "ocs2": "2025-08-16"})
    client.post("/selection/all")

    response = client.post("/send", json={"channel": "email"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["sent"] == 2
    assert sorted(channels[Channel.EMAIL].sent) == sorted(r["email"] for r in records)


def test_send_whatsapp_without_phones(client, channels):
    """WhatsApp to recipients without phones fails with no sends."""
    records = _upload(client).json()["results"]
    bob = records[1]

    response = client.post("/send", json={"channel": "whatsapp", "ids": [bob["id"]]})

    assert response.status_code == 400
    assert response.json()["message"] == NO_VALID_RECIPIENTS
    assert channels[Channel.WHATSAPP].attempted == []


def test_send_requires_selection(client, channels):
    """Nothing selected is rejected before dispatch."""
    _upload(client)
    response = client.post("/send", json={"channel": "email"})
    assert response.status_code == 400
    assert channels == {}


def test_send_while_busy(client, channels):
    """A concurrent dispatch trigger is refused."""
    _upload(client)
    client.post("/selection/all")
    main.session.is_sending = True

    response = client.post("/send", json={"channel": "email"})

    assert response.status_code == 409


def test_legacy_send_mails(client, channels):
    """The payload-level endpoint accepts camelCase candidates."""
    candidate = {
        "name": "Jane",
        "email": "jane@example.com",
        "status": "Completed",
        "chapterCompletion": "10/10",
        "marksObtained": 40,
        "maxMarks": 50,
        "skippedQuestions": 0,
        "ocs1Status": "Attended",
        "ocs2Status": "Attended",
    }

    response = client.post("/send-mails", json={"candidates": [candidate]})
    assert response.status_code == 200
    assert response.json()["message"] == channels[Channel.EMAIL].success_message

    empty = client.post("/send-mails", json={"candidates": []})
    assert empty.status_code == 400
    assert empty.json()["error"] == "Candidates array is required"

    no_phone = client.post("/send-whatsapp", json={"candidates": [candidate]})
    assert no_phone.status_code == 400
    assert no_phone.json()["error"] == NO_VALID_RECIPIENTS


def test_reset_and_download(client):
    """CSV export reflects the roster; reset empties it."""
    _upload(client)

    download = client.get("/download.csv")
    assert download.status_code == 200
    assert "august_progress.csv" in download.headers["content-disposition"]
    lines = download.text.strip().splitlines()
    assert lines[0].startswith("ID,Name,Email")
    assert len(lines) == 3

    assert client.post("/reset").status_code == 200
    assert client.get("/students").json()["results"] == []
    assert client.get("/download.csv").status_code == 404

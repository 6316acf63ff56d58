"""
Assessments API: generation and document processing endpoints.

Runs the app in-process with the stub generation adapter, the in-memory
grading repo and filesystem storage.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from backend.assessments.ports import AIPermanentError
from backend.grading.repo import DocumentSubmission, InMemoryGradingRepo
from backend.storage.ports import FilesystemStorage
from backend.web import main
from backend.web.routes import assessments as assessments_routes

pytestmark = pytest.mark.anyio("asyncio")


async def _client(roles=("instructor",), sub="instructor-1"):
    client = httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")
    sess = main.SESSION_STORE.create(sub=sub, name="Test User", roles=list(roles))
    client.cookies.set(main.SESSION_COOKIE_NAME, sess.session_id)
    return client


@pytest.fixture
def seeded(tmp_path):
    storage = FilesystemStorage(tmp_path)
    storage.put_object(bucket="assessment-submissions", key="student-1/report.txt", body=b"Mitosis has four phases.")
    repo = InMemoryGradingRepo()
    repo.add_document_submission(
        DocumentSubmission(
            id="doc-1",
            user_id="student-1",
            module_id="mod-1",
            assessment_type="quiz",
            file_name="report.txt",
            file_path="student-1/report.txt",
            module_topic="Cell Division",
        )
    )
    assessments_routes.set_repo(repo)
    assessments_routes.set_storage_adapter(storage)
    return repo


class _FailingAdapter:
    def complete(self, *, messages, timeout):
        raise AIPermanentError("rejected")


class _ProseAdapter:
    def complete(self, *, messages, timeout):
        return "Sorry, I can only answer in prose."


async def test_instructor_generates_quiz():
    async with (await _client()) as client:
        resp = await client.post("/api/assessments/generate", json={"topic": "Cell Division", "quizType": "quiz"})
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["questions"]) == 25
    assert body["totalMarks"] == 25
    assert resp.headers["Cache-Control"] == "private, no-store"


async def test_instructor_generates_final_test():
    async with (await _client(roles=("admin",))) as client:
        resp = await client.post("/api/assessments/generate", json={"topic": "Cell Division", "quizType": "final_test"})
    assert resp.status_code == 200
    assert resp.json()["totalMarks"] == 50


async def test_student_cannot_generate():
    async with (await _client(roles=("student",), sub="student-1")) as client:
        resp = await client.post("/api/assessments/generate", json={"topic": "Cells"})
    assert resp.status_code == 403


@pytest.mark.parametrize(
    "payload, detail",
    [({"topic": ""}, "invalid_topic"), ({"topic": "Cells", "quizType": "exam"}, "invalid_quiz_type"), ({"topic": 5}, "invalid_input")],
)
async def test_generate_validation(payload, detail):
    async with (await _client()) as client:
        resp = await client.post("/api/assessments/generate", json=payload)
    assert resp.status_code == 400
    assert resp.json()["detail"] == detail


async def test_generate_maps_model_failures_to_502():
    async with (await _client()) as client:
        assessments_routes.set_adapter(_ProseAdapter())
        malformed = await client.post("/api/assessments/generate", json={"topic": "Cells"})
        assessments_routes.set_adapter(_FailingAdapter())
        failed = await client.post("/api/assessments/generate", json={"topic": "Cells"})
    assert malformed.status_code == 502
    assert malformed.json()["detail"] == "invalid_ai_response"
    assert failed.status_code == 502
    assert failed.json()["detail"] == "ai_unavailable"


async def test_generate_rejects_cross_origin():
    async with (await _client()) as client:
        resp = await client.post(
            "/api/assessments/generate", json={"topic": "Cells"}, headers={"Referer": "https://evil.example/page"}
        )
    assert resp.status_code == 403


async def test_student_grades_own_document(seeded):
    async with (await _client(roles=("student",), sub="student-1")) as client:
        resp = await client.post("/api/assessments/grade-document", json={"submissionId": "doc-1"})
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "score": 80,
        "totalMarks": 100,
        "feedback": "Stub feedback: solid structure.",
    }
    assert seeded.get_document_submission("doc-1").status == "graded"


async def test_student_cannot_grade_foreign_document(seeded):
    async with (await _client(roles=("student",), sub="student-2")) as client:
        resp = await client.post("/api/assessments/grade-document", json={"submissionId": "doc-1"})
    assert resp.status_code == 404
    assert seeded.get_document_submission("doc-1").status == "pending"


async def test_grade_document_requires_submission_id():
    async with (await _client()) as client:
        resp = await client.post("/api/assessments/grade-document", json={})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "missing_submission_id"


async def test_grade_document_download_failure_returns_500(seeded):
    from backend.storage.ports import NullStorage

    assessments_routes.set_storage_adapter(NullStorage())
    async with (await _client()) as client:
        resp = await client.post("/api/assessments/grade-document", json={"submissionId": "doc-1"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "processing_failed", "detail": "Failed to download file"}
    assert seeded.get_document_submission("doc-1").ai_feedback == "Failed to download file"


async def test_flashcards_and_presentation(seeded):
    async with (await _client()) as client:
        cards = await client.post("/api/assessments/flashcards", json={"submissionId": "doc-1"})
        deck = await client.post("/api/assessments/presentation", json={"submissionId": "doc-1"})
    assert cards.status_code == 200
    assert cards.json()["success"] is True
    assert len(cards.json()["flashcards"]) == 15
    assert len(seeded.flashcards) == 15

    assert deck.status_code == 200
    body = deck.json()
    assert len(body["slides"]) == 8
    assert body["presentationId"] in seeded.presentations


async def test_document_routes_require_session():
    async with httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test") as client:
        resp = await client.post("/api/assessments/flashcards", json={"submissionId": "doc-1"})
    assert resp.status_code == 401

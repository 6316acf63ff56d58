"""
Assessment use cases: generation, document grading and study material.

Guards:
    - submission status moves pending -> processing -> graded (or error)
    - failures store a client-safe reason as feedback
    - students cannot reach other students' submissions
"""
from __future__ import annotations

from datetime import datetime, timezone
import json

import pytest

from backend.assessments.adapters.stub_generation import StubGenerationAdapter
from backend.assessments.ports import AIResponseFormatError, AITransientError, DocumentProcessingError
from backend.assessments.usecases import (
    DOWNLOAD_FAILED,
    GENERATION_FAILED,
    GRADING_FAILED,
    GenerateAssessmentInput,
    GenerateAssessmentUseCase,
    GenerateFlashcardsUseCase,
    GeneratePresentationUseCase,
    GradeDocumentInput,
    GradeDocumentUseCase,
    ProcessDocumentInput,
)
from backend.grading.repo import DocumentSubmission, InMemoryGradingRepo
from backend.storage.ports import FilesystemStorage, NullStorage

NOW = datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc)
BUCKET = "assessment-submissions"


class _RecordingAdapter:
    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.messages: list = []

    def complete(self, *, messages, timeout):
        self.messages.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def storage(tmp_path):
    fs = FilesystemStorage(tmp_path)
    fs.put_object(bucket=BUCKET, key="student-1/essay.txt", body=b"Cells are the basic unit of life.")
    return fs


@pytest.fixture
def repo():
    repo = InMemoryGradingRepo()
    repo.add_document_submission(
        DocumentSubmission(
            id="doc-1",
            user_id="student-1",
            module_id="mod-1",
            assessment_type="assignment",
            file_name="essay.txt",
            file_path="student-1/essay.txt",
            word_count=7,
            page_count=1,
            module_topic="Cell Biology",
        )
    )
    repo.set_assignment_content("mod-1", [{"question": "Describe a cell."}])
    return repo


def _use_case(cls, repo, storage, adapter):
    return cls(repo, storage, adapter, bucket=BUCKET, timeout=5, clock=lambda: NOW)


def test_generate_quiz_and_final_test_with_stub():
    use_case = GenerateAssessmentUseCase(StubGenerationAdapter(), timeout=5)
    quiz = use_case.execute(GenerateAssessmentInput(topic="Cell Biology"))
    final = use_case.execute(GenerateAssessmentInput(topic="Cell Biology", quiz_type="final_test"))
    assert len(quiz.questions) == 25
    assert final.total_marks == 50
    assert {q.section_title for q in final.questions} >= {"Section A: Multiple Choice Questions"}


@pytest.mark.parametrize(
    "topic, quiz_type, detail",
    [("", "quiz", "invalid_topic"), ("x" * 201, "quiz", "invalid_topic"), ("Cells", "exam", "invalid_quiz_type")],
)
def test_generate_rejects_bad_input(topic, quiz_type, detail):
    with pytest.raises(ValueError, match=detail):
        GenerateAssessmentUseCase(StubGenerationAdapter()).execute(GenerateAssessmentInput(topic=topic, quiz_type=quiz_type))


def test_generate_propagates_malformed_model_output():
    with pytest.raises(AIResponseFormatError):
        GenerateAssessmentUseCase(_RecordingAdapter("no json here")).execute(GenerateAssessmentInput(topic="Cells"))


def test_grade_document_persists_model_grade(repo, storage):
    adapter = _RecordingAdapter('{"score": 68, "total_marks": 100, "feedback": "Clear but brief."}')
    result = _use_case(GradeDocumentUseCase, repo, storage, adapter).execute(GradeDocumentInput(submission_id="doc-1"))

    assert (result.score, result.total_marks, result.feedback) == (68, 100, "Clear but brief.")
    stored = repo.get_document_submission("doc-1")
    assert stored.status == "graded"
    assert stored.score == 68
    assert stored.ai_feedback == "Clear but brief."
    assert stored.graded_at == NOW
    user_prompt = adapter.messages[0][1]["content"]
    assert user_prompt.startswith('Assignment Questions: [{"question": "Describe a cell."}]')
    assert "Cells are the basic unit of life." in user_prompt


def test_grade_document_falls_back_on_free_text(repo, storage):
    adapter = _RecordingAdapter("Solid work overall.")
    result = _use_case(GradeDocumentUseCase, repo, storage, adapter).execute(GradeDocumentInput(submission_id="doc-1"))
    assert (result.score, result.total_marks, result.feedback) == (75, 100, "Solid work overall.")
    assert repo.get_document_submission("doc-1").status == "graded"


def test_grade_document_uses_module_topic_for_quiz_documents(repo, storage):
    repo.add_document_submission(
        DocumentSubmission(
            id="doc-2",
            user_id="student-1",
            module_id="mod-1",
            assessment_type="final_test",
            file_name="essay.txt",
            file_path="student-1/essay.txt",
            module_topic="Cell Biology",
        )
    )
    adapter = _RecordingAdapter('{"score": 40, "total_marks": 50, "feedback": "ok"}')
    _use_case(GradeDocumentUseCase, repo, storage, adapter).execute(GradeDocumentInput(submission_id="doc-2"))
    assert adapter.messages[0][1]["content"].startswith("This is a final_test for the module: Cell Biology")


def test_grade_document_download_failure_marks_error(repo):
    adapter = _RecordingAdapter("{}")
    with pytest.raises(DocumentProcessingError) as exc:
        _use_case(GradeDocumentUseCase, repo, NullStorage(), adapter).execute(GradeDocumentInput(submission_id="doc-1"))
    assert exc.value.detail == DOWNLOAD_FAILED
    stored = repo.get_document_submission("doc-1")
    assert (stored.status, stored.ai_feedback) == ("error", DOWNLOAD_FAILED)
    assert adapter.messages == []


def test_grade_document_ai_failure_marks_error(repo, storage):
    adapter = _RecordingAdapter(error=AITransientError("timeout"))
    with pytest.raises(DocumentProcessingError) as exc:
        _use_case(GradeDocumentUseCase, repo, storage, adapter).execute(GradeDocumentInput(submission_id="doc-1"))
    assert exc.value.detail == GRADING_FAILED
    stored = repo.get_document_submission("doc-1")
    assert (stored.status, stored.ai_feedback) == ("error", GRADING_FAILED)


def test_unknown_or_foreign_submission_is_not_found(repo, storage):
    use_case = _use_case(GradeDocumentUseCase, repo, storage, StubGenerationAdapter())
    with pytest.raises(LookupError):
        use_case.execute(GradeDocumentInput(submission_id="missing"))
    with pytest.raises(LookupError):
        use_case.execute(GradeDocumentInput(submission_id="doc-1", owner_sub="student-2"))
    assert repo.get_document_submission("doc-1").status == "pending"


def test_flashcards_are_stored_for_the_module(repo, storage):
    cards = _use_case(GenerateFlashcardsUseCase, repo, storage, StubGenerationAdapter()).execute(
        ProcessDocumentInput(submission_id="doc-1", owner_sub="student-1")
    )
    assert len(cards) == 15
    assert len(repo.flashcards) == 15
    assert repo.flashcards[0]["module_id"] == "mod-1"
    assert repo.flashcards[0]["created_by"] == "student-1"
    assert repo.get_document_submission("doc-1").processed_at == NOW


def test_flashcards_ai_failure_is_reported(repo, storage):
    adapter = _RecordingAdapter(error=AITransientError("down"))
    with pytest.raises(DocumentProcessingError) as exc:
        _use_case(GenerateFlashcardsUseCase, repo, storage, adapter).execute(ProcessDocumentInput(submission_id="doc-1"))
    assert exc.value.detail == GENERATION_FAILED
    assert repo.flashcards == []


def test_presentation_is_created_with_ordered_slides(repo, storage):
    reply = json.dumps({"slides": [{"title": "Intro", "content": "- cells"}, {"title": "Summary", "content": "- done"}]})
    presentation_id, slides = _use_case(
        GeneratePresentationUseCase, repo, storage, _RecordingAdapter(reply)
    ).execute(ProcessDocumentInput(submission_id="doc-1"))

    assert [s.title for s in slides] == ["Intro", "Summary"]
    stored = repo.presentations[presentation_id]
    assert stored["title"] == "Cell Biology Presentation"
    assert [(s["slide_order"], s["title"]) for s in stored["slides"]] == [(0, "Intro"), (1, "Summary")]

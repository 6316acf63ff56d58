"""
Use cases for AI-backed assessments.

Intent:
    Generate quizzes and final tests from a topic, grade uploaded documents,
    and derive flashcards or a slide deck from a document. Each use case is
    framework-free: the web adapter resolves the caller and maps errors.

Error semantics:
    - ValueError: bad input (empty topic, unknown quiz type).
    - LookupError: unknown submission id.
    - AIResponseFormatError: the model output could not be parsed.
    - AIError: the model call itself failed.
    - DocumentProcessingError: a pipeline step failed after the submission
      status was updated; its `detail` mirrors the stored feedback.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from importlib import import_module
import json
import logging
from typing import Callable, List, Optional

from backend.grading.repo import DocumentSubmission, GradingRepoProtocol
from backend.storage.config import get_assessment_bucket
from backend.storage.ports import BinaryReadStorage

from . import prompts
from .config import AIConfig
from .parsing import parse_flashcards, parse_generated_assessment, parse_grading_result, parse_slides
from .ports import (
    AIError,
    DocumentProcessingError,
    Flashcard,
    GeneratedAssessment,
    GenerationAdapterProtocol,
    GradingResult,
    Slide,
)

LOG = logging.getLogger(__name__)

QUIZ_TYPES = ("quiz", "final_test")
MAX_TOPIC_LENGTH = 200

DOWNLOAD_FAILED = "Failed to download file"
GRADING_FAILED = "AI grading failed"
GENERATION_FAILED = "AI generation failed"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def load_generation_adapter(cfg: AIConfig) -> GenerationAdapterProtocol:
    """Import the configured adapter module and call its `build()` factory."""
    module = import_module(cfg.generation_adapter_path)
    return module.build()  # type: ignore[attr-defined]


@dataclass
class GenerateAssessmentInput:
    topic: str
    quiz_type: str = "quiz"


class GenerateAssessmentUseCase:
    def __init__(self, adapter: GenerationAdapterProtocol, *, timeout: int = 60) -> None:
        self._adapter = adapter
        self._timeout = timeout

    def execute(self, req: GenerateAssessmentInput) -> GeneratedAssessment:
        """Generate a quiz (25 MCQs) or a 50-mark final test for a topic.

        Behavior:
            - Topic must be non-empty and at most 200 characters.
            - `quiz_type` is `quiz` or `final_test`.
            - Fenced or prose-wrapped JSON is recovered; anything else raises
              AIResponseFormatError.
        """
        topic = (req.topic or "").strip()
        if not topic or len(topic) > MAX_TOPIC_LENGTH:
            raise ValueError("invalid_topic")
        quiz_type = (req.quiz_type or "quiz").strip().lower()
        if quiz_type not in QUIZ_TYPES:
            raise ValueError("invalid_quiz_type")
        raw = self._adapter.complete(messages=prompts.assessment_messages(topic, quiz_type), timeout=self._timeout)
        assessment = parse_generated_assessment(raw)
        LOG.info(
            "assessments.generate.completed quiz_type=%s questions=%s total_marks=%s",
            quiz_type,
            len(assessment.questions),
            assessment.total_marks,
        )
        return assessment


class _DocumentUseCase:
    def __init__(
        self,
        repo: GradingRepoProtocol,
        storage: BinaryReadStorage,
        adapter: GenerationAdapterProtocol,
        *,
        bucket: Optional[str] = None,
        timeout: int = 60,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repo
        self._storage = storage
        self._adapter = adapter
        self._bucket = bucket or get_assessment_bucket()
        self._timeout = timeout
        self._clock = clock or _utcnow

    def _load(self, submission_id: str, owner_sub: Optional[str] = None) -> DocumentSubmission:
        if not submission_id:
            raise ValueError("missing_submission_id")
        submission = self._repo.get_document_submission(submission_id)
        # Foreign submissions look exactly like missing ones.
        if submission is None or (owner_sub is not None and submission.user_id != owner_sub):
            raise LookupError("submission_not_found")
        return submission

    def _download(self, submission: DocumentSubmission) -> bytes:
        try:
            return self._storage.download_object(bucket=self._bucket, key=submission.file_path)
        except Exception as exc:
            LOG.warning(
                "assessments.document.download_failed submission_id=%s reason=%s",
                submission.id,
                exc.__class__.__name__,
            )
            raise DocumentProcessingError(DOWNLOAD_FAILED) from exc

    @staticmethod
    def _text(body: bytes) -> str:
        return body.decode("utf-8", errors="replace")


@dataclass
class GradeDocumentInput:
    submission_id: str
    owner_sub: Optional[str] = None


class GradeDocumentUseCase(_DocumentUseCase):
    def execute(self, req: GradeDocumentInput) -> GradingResult:
        """Grade an uploaded document and persist the result.

        Behavior:
            - Status moves `pending` -> `processing` -> `graded`, or `error`
              with feedback "Failed to download file" / "AI grading failed".
            - Assignment documents are graded against the module's assignment
              questions; quiz/final-test documents against the module topic.
            - Unparseable model output falls back to the default score.
        """
        submission = self._load(req.submission_id, req.owner_sub)
        self._repo.update_document_submission(submission.id, status="processing")

        try:
            body = self._download(submission)
        except DocumentProcessingError:
            self._repo.update_document_submission(submission.id, status="error", ai_feedback=DOWNLOAD_FAILED)
            raise

        messages = prompts.grading_messages(
            assessment_context=self._assessment_context(submission),
            file_name=submission.file_name,
            word_count=submission.word_count,
            page_count=submission.page_count,
            document_text=self._text(body),
        )
        try:
            raw = self._adapter.complete(messages=messages, timeout=self._timeout)
        except AIError as exc:
            LOG.warning(
                "assessments.grading.ai_failed submission_id=%s reason=%s",
                submission.id,
                exc.__class__.__name__,
            )
            self._repo.update_document_submission(submission.id, status="error", ai_feedback=GRADING_FAILED)
            raise DocumentProcessingError(GRADING_FAILED) from exc

        result = parse_grading_result(raw)
        self._repo.update_document_submission(
            submission.id,
            status="graded",
            score=result.score,
            total_marks=result.total_marks,
            ai_feedback=result.feedback,
            graded_at=self._clock(),
        )
        LOG.info(
            "assessments.grading.completed submission_id=%s score=%s total=%s parse_status=%s",
            submission.id,
            result.score,
            result.total_marks,
            result.parse_status,
        )
        return result

    def _assessment_context(self, submission: DocumentSubmission) -> str:
        if submission.assessment_type == "assignment":
            content = self._repo.get_assignment_content(submission.module_id)
            if content is not None:
                return f"Assignment Questions: {json.dumps(content, ensure_ascii=False)}"
            return ""
        if submission.assessment_type in QUIZ_TYPES:
            return f"This is a {submission.assessment_type} for the module: {submission.module_topic}"
        return ""


@dataclass
class ProcessDocumentInput:
    submission_id: str
    owner_sub: Optional[str] = None


class GenerateFlashcardsUseCase(_DocumentUseCase):
    def execute(self, req: ProcessDocumentInput) -> List[Flashcard]:
        """Create 15-20 flashcards for the submission's module from the document."""
        submission = self._load(req.submission_id, req.owner_sub)
        text = self._text(self._download(submission))
        messages = prompts.flashcards_messages(topic=submission.module_topic, document_text=text)
        try:
            raw = self._adapter.complete(messages=messages, timeout=self._timeout)
        except AIError as exc:
            LOG.warning("assessments.flashcards.ai_failed submission_id=%s reason=%s", submission.id, exc.__class__.__name__)
            raise DocumentProcessingError(GENERATION_FAILED) from exc
        cards = parse_flashcards(raw)
        self._repo.add_flashcards(
            module_id=submission.module_id,
            created_by=submission.user_id,
            cards=[{"question": c.question, "answer": c.answer} for c in cards],
        )
        self._repo.update_document_submission(submission.id, processed_at=self._clock())
        LOG.info("assessments.flashcards.completed submission_id=%s count=%s", submission.id, len(cards))
        return cards


class GeneratePresentationUseCase(_DocumentUseCase):
    def execute(self, req: ProcessDocumentInput) -> tuple[str, List[Slide]]:
        """Create an 8-12 slide presentation for the module; returns (presentation_id, slides)."""
        submission = self._load(req.submission_id, req.owner_sub)
        text = self._text(self._download(submission))
        messages = prompts.presentation_messages(topic=submission.module_topic, document_text=text)
        try:
            raw = self._adapter.complete(messages=messages, timeout=self._timeout)
        except AIError as exc:
            LOG.warning("assessments.presentation.ai_failed submission_id=%s reason=%s", submission.id, exc.__class__.__name__)
            raise DocumentProcessingError(GENERATION_FAILED) from exc
        slides = parse_slides(raw)
        presentation_id = self._repo.create_presentation(
            module_id=submission.module_id,
            title=f"{submission.module_topic or 'Document'} Presentation",
            created_by=submission.user_id,
            slides=[{"title": s.title, "content": s.content} for s in slides],
        )
        self._repo.update_document_submission(submission.id, processed_at=self._clock())
        LOG.info("assessments.presentation.completed submission_id=%s slides=%s", submission.id, len(slides))
        return presentation_id, slides


__all__ = [
    "QUIZ_TYPES",
    "DOWNLOAD_FAILED",
    "GRADING_FAILED",
    "GENERATION_FAILED",
    "load_generation_adapter",
    "GenerateAssessmentInput",
    "GenerateAssessmentUseCase",
    "GradeDocumentInput",
    "GradeDocumentUseCase",
    "ProcessDocumentInput",
    "GenerateFlashcardsUseCase",
    "GeneratePresentationUseCase",
]

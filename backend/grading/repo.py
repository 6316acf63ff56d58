"""
Persistence for graded work: document submissions, assignment submissions,
and the study material generated from uploaded documents.

Tables (Postgres):
    public.document_submissions(id, user_id, module_id, assessment_type,
        file_name, file_path, word_count, page_count, status, score,
        total_marks, ai_feedback, graded_at, processed_at)
    public.assignment_submissions(id, module_id, assignment_id, answers,
        submitted_at, status, score, total_marks, feedback)
    public.modules(id, topic, user_id), public.profiles(id, full_name)
    public.assignments(module_id, content)
    public.flashcards(module_id, question, answer, created_by)
    public.presentations(id, module_id, title, created_by)
    public.presentation_slides(presentation_id, slide_order, title, content)
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
import os
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol, Sequence
import uuid

try:  # pragma: no cover - optional dependency
    import psycopg
    from psycopg.rows import dict_row

    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover
    psycopg = None  # type: ignore
    dict_row = None  # type: ignore
    HAVE_PSYCOPG = False

DOCUMENT_STATUSES = ("pending", "processing", "graded", "error")
ASSIGNMENT_STATUSES = ("submitted", "graded")


@dataclass
class DocumentSubmission:
    id: str
    user_id: str
    module_id: str
    assessment_type: str  # "assignment" | "quiz" | "final_test"
    file_name: str
    file_path: str
    status: str = "pending"
    word_count: Optional[int] = None
    page_count: Optional[int] = None
    score: Optional[int] = None
    total_marks: Optional[int] = None
    ai_feedback: Optional[str] = None
    graded_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    module_topic: Optional[str] = None


@dataclass
class AssignmentSubmission:
    id: str
    module_id: str
    assignment_id: Optional[str]
    answers: Any
    submitted_at: datetime
    total_marks: int
    status: str = "submitted"
    score: Optional[int] = None
    feedback: Optional[str] = None
    module_topic: str = ""
    student_name: str = "Unknown"

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "module_id": self.module_id,
            "assignment_id": self.assignment_id,
            "answers": self.answers,
            "submitted_at": self.submitted_at.isoformat(),
            "status": self.status,
            "score": self.score,
            "total_marks": self.total_marks,
            "feedback": self.feedback,
            "module_topic": self.module_topic,
            "student_name": self.student_name,
        }


class GradingRepoProtocol(Protocol):
    def get_document_submission(self, submission_id: str) -> Optional[DocumentSubmission]:
        ...

    def update_document_submission(self, submission_id: str, **fields: Any) -> None:
        ...

    def get_assignment_content(self, module_id: str) -> Optional[Any]:
        ...

    def add_flashcards(self, *, module_id: str, created_by: str, cards: Sequence[dict]) -> int:
        ...

    def create_presentation(self, *, module_id: str, title: str, created_by: str, slides: Sequence[dict]) -> str:
        ...

    def list_assignment_submissions(self) -> List[AssignmentSubmission]:
        ...

    def get_assignment_submission(self, submission_id: str) -> Optional[AssignmentSubmission]:
        ...

    def grade_assignment_submission(self, submission_id: str, *, score: int, feedback: str) -> AssignmentSubmission:
        ...


_DOCUMENT_FIELDS = {"status", "score", "total_marks", "ai_feedback", "graded_at", "processed_at"}


class InMemoryGradingRepo:
    """Dict-backed repo for development and tests."""

    def __init__(self) -> None:
        self._documents: Dict[str, DocumentSubmission] = {}
        self._assignments: Dict[str, AssignmentSubmission] = {}
        self._assignment_content: Dict[str, Any] = {}
        self.flashcards: List[dict] = []
        self.presentations: Dict[str, dict] = {}
        self._lock = Lock()

    # --- Seeding (tests/dev) -----------------------------------------------------

    def add_document_submission(self, submission: DocumentSubmission) -> None:
        self._documents[submission.id] = submission

    def add_assignment_submission(self, submission: AssignmentSubmission) -> None:
        self._assignments[submission.id] = submission

    def set_assignment_content(self, module_id: str, content: Any) -> None:
        self._assignment_content[module_id] = content

    # --- Protocol ----------------------------------------------------------------

    def get_document_submission(self, submission_id: str) -> Optional[DocumentSubmission]:
        with self._lock:
            sub = self._documents.get(submission_id)
            return replace(sub) if sub is not None else None

    def update_document_submission(self, submission_id: str, **fields: Any) -> None:
        unknown = set(fields) - _DOCUMENT_FIELDS
        if unknown:
            raise ValueError(f"unknown fields: {sorted(unknown)}")
        with self._lock:
            sub = self._documents.get(submission_id)
            if sub is None:
                raise LookupError("submission_not_found")
            self._documents[submission_id] = replace(sub, **fields)

    def get_assignment_content(self, module_id: str) -> Optional[Any]:
        return self._assignment_content.get(module_id)

    def add_flashcards(self, *, module_id: str, created_by: str, cards: Sequence[dict]) -> int:
        with self._lock:
            for card in cards:
                self.flashcards.append({"module_id": module_id, "created_by": created_by, **card})
        return len(cards)

    def create_presentation(self, *, module_id: str, title: str, created_by: str, slides: Sequence[dict]) -> str:
        presentation_id = str(uuid.uuid4())
        with self._lock:
            self.presentations[presentation_id] = {
                "module_id": module_id,
                "title": title,
                "created_by": created_by,
                "slides": [dict(slide, slide_order=i) for i, slide in enumerate(slides)],
            }
        return presentation_id

    def list_assignment_submissions(self) -> List[AssignmentSubmission]:
        with self._lock:
            return [replace(s) for s in self._assignments.values()]

    def get_assignment_submission(self, submission_id: str) -> Optional[AssignmentSubmission]:
        with self._lock:
            sub = self._assignments.get(submission_id)
            return replace(sub) if sub is not None else None

    def grade_assignment_submission(self, submission_id: str, *, score: int, feedback: str) -> AssignmentSubmission:
        with self._lock:
            sub = self._assignments.get(submission_id)
            if sub is None:
                raise LookupError("submission_not_found")
            updated = replace(sub, score=score, feedback=feedback, status="graded")
            self._assignments[submission_id] = updated
            return replace(updated)


def _dsn() -> str:
    for candidate in (os.getenv("GRADING_DATABASE_URL"), os.getenv("DATABASE_URL")):
        if candidate:
            return candidate
    raise RuntimeError("Database DSN unavailable for grading repo")


def _document_from_row(row: dict) -> DocumentSubmission:
    return DocumentSubmission(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        module_id=str(row["module_id"]),
        assessment_type=row["assessment_type"],
        file_name=row["file_name"],
        file_path=row["file_path"],
        status=row["status"],
        word_count=row.get("word_count"),
        page_count=row.get("page_count"),
        score=row.get("score"),
        total_marks=row.get("total_marks"),
        ai_feedback=row.get("ai_feedback"),
        graded_at=row.get("graded_at"),
        processed_at=row.get("processed_at"),
        module_topic=row.get("topic"),
    )


def _assignment_from_row(row: dict) -> AssignmentSubmission:
    return AssignmentSubmission(
        id=str(row["id"]),
        module_id=str(row["module_id"]),
        assignment_id=str(row["assignment_id"]) if row.get("assignment_id") else None,
        answers=row.get("answers"),
        submitted_at=row["submitted_at"],
        total_marks=int(row.get("total_marks") or 0),
        status=row["status"],
        score=row.get("score"),
        feedback=row.get("feedback"),
        module_topic=row.get("topic") or "",
        student_name=row.get("full_name") or "Unknown",
    )


_ASSIGNMENT_SELECT = """
    select s.id, s.module_id, s.assignment_id, s.answers, s.submitted_at, s.status,
           s.score, s.total_marks, s.feedback, m.topic, p.full_name
      from public.assignment_submissions s
      left join public.modules m on m.id = s.module_id
      left join public.profiles p on p.id = m.user_id
"""


class DBGradingRepo:
    """Postgres-backed grading repo (psycopg3, one short connection per call)."""

    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBGradingRepo")
        self._dsn = dsn or _dsn()

    def get_document_submission(self, submission_id: str) -> Optional[DocumentSubmission]:
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn:  # type: ignore[arg-type]
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select d.*, m.topic
                      from public.document_submissions d
                      left join public.modules m on m.id = d.module_id
                     where d.id = %s
                    """,
                    (submission_id,),
                )
                row = cur.fetchone()
        return _document_from_row(row) if row else None

    def update_document_submission(self, submission_id: str, **fields: Any) -> None:
        unknown = set(fields) - _DOCUMENT_FIELDS
        if unknown or not fields:
            raise ValueError(f"unknown fields: {sorted(unknown)}")
        columns = sorted(fields)
        assignments = ", ".join(f"{name} = %s" for name in columns)
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"update public.document_submissions set {assignments} where id = %s",
                    (*[fields[name] for name in columns], submission_id),
                )
                if cur.rowcount == 0:
                    raise LookupError("submission_not_found")
            conn.commit()

    def get_assignment_content(self, module_id: str) -> Optional[Any]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select content from public.assignments where module_id = %s limit 1", (module_id,))
                row = cur.fetchone()
        return row[0] if row else None

    def add_flashcards(self, *, module_id: str, created_by: str, cards: Sequence[dict]) -> int:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.executemany(
                    "insert into public.flashcards (module_id, question, answer, created_by) values (%s, %s, %s, %s)",
                    [(module_id, c["question"], c["answer"], created_by) for c in cards],
                )
            conn.commit()
        return len(cards)

    def create_presentation(self, *, module_id: str, title: str, created_by: str, slides: Sequence[dict]) -> str:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    insert into public.presentations (module_id, title, created_by)
                    values (%s, %s, %s)
                    returning id::text
                    """,
                    (module_id, title, created_by),
                )
                presentation_id = cur.fetchone()[0]
                cur.executemany(
                    """
                    insert into public.presentation_slides (presentation_id, slide_order, title, content)
                    values (%s, %s, %s, %s)
                    """,
                    [(presentation_id, i, s["title"], s["content"]) for i, s in enumerate(slides)],
                )
            conn.commit()
        return presentation_id

    def list_assignment_submissions(self) -> List[AssignmentSubmission]:
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn:  # type: ignore[arg-type]
            with conn.cursor() as cur:
                cur.execute(_ASSIGNMENT_SELECT + " order by s.submitted_at desc")
                rows = cur.fetchall()
        return [_assignment_from_row(row) for row in rows]

    def get_assignment_submission(self, submission_id: str) -> Optional[AssignmentSubmission]:
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn:  # type: ignore[arg-type]
            with conn.cursor() as cur:
                cur.execute(_ASSIGNMENT_SELECT + " where s.id = %s", (submission_id,))
                row = cur.fetchone()
        return _assignment_from_row(row) if row else None

    def grade_assignment_submission(self, submission_id: str, *, score: int, feedback: str) -> AssignmentSubmission:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    update public.assignment_submissions
                       set score = %s, feedback = %s, status = 'graded'
                     where id = %s
                    """,
                    (score, feedback, submission_id),
                )
                if cur.rowcount == 0:
                    raise LookupError("submission_not_found")
            conn.commit()
        updated = self.get_assignment_submission(submission_id)
        if updated is None:
            raise LookupError("submission_not_found")
        return updated


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


__all__ = [
    "DOCUMENT_STATUSES",
    "ASSIGNMENT_STATUSES",
    "DocumentSubmission",
    "AssignmentSubmission",
    "GradingRepoProtocol",
    "InMemoryGradingRepo",
    "DBGradingRepo",
    "HAVE_PSYCOPG",
    "utcnow",
]

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List

from .repo import AssignmentSubmission, GradingRepoProtocol

LOG = logging.getLogger(__name__)


@dataclass
class SubmissionListing:
    items: List[AssignmentSubmission]
    pending_count: int
    graded_count: int

    def as_dict(self) -> dict:
        return {
            "items": [s.as_dict() for s in self.items],
            "pending_count": self.pending_count,
            "graded_count": self.graded_count,
        }


class ListAssignmentSubmissionsUseCase:
    def __init__(self, repo: GradingRepoProtocol) -> None:
        self._repo = repo

    def execute(self) -> SubmissionListing:
        """Return all assignment submissions, newest first, with status counts.

        Permissions:
            Instructor or admin; enforced by the web adapter.
        """
        items = sorted(self._repo.list_assignment_submissions(), key=lambda s: s.submitted_at, reverse=True)
        return SubmissionListing(
            items=items,
            pending_count=sum(1 for s in items if s.status == "submitted"),
            graded_count=sum(1 for s in items if s.status == "graded"),
        )


@dataclass
class GradeAssignmentInput:
    submission_id: str
    score: object
    feedback: str = ""


class GradeAssignmentSubmissionUseCase:
    def __init__(self, repo: GradingRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: GradeAssignmentInput) -> AssignmentSubmission:
        """Record an instructor grade for one assignment submission.

        Behavior:
            - Raises LookupError when the submission does not exist.
            - The score must be an integer within 0..total_marks, else ValueError.
            - Sets the status to `graded` and stores the feedback text.
        """
        current = self._repo.get_assignment_submission(req.submission_id)
        if current is None:
            raise LookupError("submission_not_found")
        score = req.score
        if isinstance(score, bool) or not isinstance(score, int):
            raise ValueError("invalid_score")
        if score < 0 or score > current.total_marks:
            raise ValueError("invalid_score")
        updated = self._repo.grade_assignment_submission(
            req.submission_id, score=score, feedback=(req.feedback or "").strip()
        )
        LOG.info("grading.assignment.graded submission_id=%s score=%s total=%s", req.submission_id, score, current.total_marks)
        return updated

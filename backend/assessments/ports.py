"""
Ports for AI-backed assessment features: result types, protocols and errors.

Intent:
    Keep the generation/grading use cases independent of the concrete model
    backend (stub, local Ollama, remote chat-completions gateway). Adapters
    return raw model text; parsing into these types lives in `parsing`.

Design:
    - Result dataclasses: GeneratedQuestion, GeneratedAssessment,
      GradingResult, Flashcard, Slide
    - Protocol: GenerationAdapterProtocol
    - Error taxonomy: transient vs. permanent, plus malformed responses
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence


# ----------------------------- Result types ---------------------------------


@dataclass
class GeneratedQuestion:
    question: str
    type: str
    marks: int
    options: Optional[List[str]] = None
    correct_answer: Any = None
    section_title: Optional[str] = None

    def as_dict(self) -> dict:
        out: Dict[str, Any] = {"question": self.question, "type": self.type, "marks": self.marks}
        if self.options is not None:
            out["options"] = list(self.options)
        if self.correct_answer is not None:
            out["correctAnswer"] = self.correct_answer
        if self.section_title:
            out["sectionTitle"] = self.section_title
        return out


@dataclass
class GeneratedAssessment:
    """Quiz or final test as returned to the client.

    Parameters:
        questions: Ordered questions; final tests carry section titles.
        metrics: Optional descriptive metrics (difficulty, learning time, ...).
    """

    questions: List[GeneratedQuestion]
    metrics: Dict[str, str] = field(default_factory=dict)

    @property
    def total_marks(self) -> int:
        return sum(q.marks for q in self.questions)

    def as_dict(self) -> dict:
        out: Dict[str, Any] = {"questions": [q.as_dict() for q in self.questions]}
        if self.metrics:
            out["metrics"] = dict(self.metrics)
        return out


@dataclass
class GradingResult:
    """Outcome of grading one document.

    `parse_status` is "model" when the AI returned usable JSON and "fallback"
    when the default score was applied to free text.
    """

    score: int
    total_marks: int
    feedback: str
    parse_status: str = "model"


@dataclass
class Flashcard:
    question: str
    answer: str


@dataclass
class Slide:
    title: str
    content: str


# ----------------------------- Protocols ------------------------------------


class GenerationAdapterProtocol(Protocol):
    """Chat-style text generation: messages in, raw assistant text out."""

    def complete(self, *, messages: Sequence[dict], timeout: int) -> str:
        ...


# ------------------------------ Errors --------------------------------------


class AIError(Exception):
    """Base class for AI adapter failures."""


class AITransientError(AIError):
    """Recoverable failure (timeout, transport, 5xx); callers may retry."""


class AIPermanentError(AIError):
    """Non-recoverable failure (rejected request, bad credentials)."""


class AIResponseFormatError(AIError, ValueError):
    """The model answered, but not with the JSON shape we asked for."""


class DocumentProcessingError(RuntimeError):
    """A document pipeline step failed; `detail` is safe to show to clients."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


__all__ = [
    "GeneratedQuestion",
    "GeneratedAssessment",
    "GradingResult",
    "Flashcard",
    "Slide",
    "GenerationAdapterProtocol",
    "AIError",
    "AITransientError",
    "AIPermanentError",
    "AIResponseFormatError",
    "DocumentProcessingError",
]

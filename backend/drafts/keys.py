"""
Draft key helpers.

Intent:
    Provide one canonical identifier for an in-progress answer set so the local
    store, the sync queue and the server agree on what "the same draft" means.

Format:
    <module_id>:<draft_type>[:<variant>]

    The variant only exists for quiz drafts (`quiz` or `final_test`); other
    draft types never carry one.
"""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional

DRAFT_TYPES = frozenset({"assignment", "quiz", "flashcards", "presentation"})
QUIZ_VARIANTS = frozenset({"quiz", "final_test"})

_MODULE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

_LABELS = {
    ("assignment", None): "Assignment",
    ("quiz", "quiz"): "Quiz",
    ("quiz", "final_test"): "Final Test",
    ("flashcards", None): "Flashcards",
    ("presentation", None): "Presentation",
}


@dataclass(frozen=True)
class DraftKey:
    """Identity of one draft: module + draft kind + optional quiz variant."""

    module_id: str
    draft_type: str
    variant: Optional[str] = None

    def as_string(self) -> str:
        parts = [self.module_id, self.draft_type]
        if self.variant:
            parts.append(self.variant)
        return ":".join(parts)

    def __str__(self) -> str:
        return self.as_string()


def make_draft_key(module_id: str, draft_type: str, variant: Optional[str] = None) -> DraftKey:
    """Validate inputs and return a normalized DraftKey.

    Behavior:
        - `draft_type` must be one of DRAFT_TYPES.
        - Quiz drafts default to the `quiz` variant; `final_test` is the only
          other accepted value.
        - Non-quiz drafts reject any variant.

    Raises:
        ValueError with a short machine-friendly detail (`invalid_module_id`,
        `invalid_draft_type`, `invalid_variant`).
    """
    module_id = (module_id or "").strip()
    if not _MODULE_ID_RE.match(module_id):
        raise ValueError("invalid_module_id")
    draft_type = (draft_type or "").strip().lower()
    if draft_type not in DRAFT_TYPES:
        raise ValueError("invalid_draft_type")
    variant = (variant or "").strip().lower() or None
    if draft_type == "quiz":
        variant = variant or "quiz"
        if variant not in QUIZ_VARIANTS:
            raise ValueError("invalid_variant")
    elif variant is not None:
        raise ValueError("invalid_variant")
    return DraftKey(module_id=module_id, draft_type=draft_type, variant=variant)


def parse_draft_key(text: str) -> DraftKey:
    """Inverse of `DraftKey.as_string()`."""
    parts = (text or "").split(":")
    if len(parts) == 2:
        return make_draft_key(parts[0], parts[1])
    if len(parts) == 3:
        return make_draft_key(parts[0], parts[1], parts[2])
    raise ValueError("invalid_draft_key")


def tab_label(key: DraftKey) -> str:
    """Human-readable label used in conflict notices."""
    return _LABELS.get((key.draft_type, key.variant), key.draft_type.replace("_", " ").title())


__all__ = [
    "DRAFT_TYPES",
    "QUIZ_VARIANTS",
    "DraftKey",
    "make_draft_key",
    "parse_draft_key",
    "tab_label",
]

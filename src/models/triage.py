"""Transient value objects produced while triaging a complaint.

None of these are persisted on their own.  The classification summary
and duplicate verdict are folded into the :class:`Complaint` at
creation time and never recomputed afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from src.models.enums import Department, EvidenceSource


@dataclass(frozen=True, slots=True)
class ScoredTerm:
    """A single visual-evidence term with the detector's confidence."""

    term: str
    score: float
    source: EvidenceSource


@dataclass(slots=True)
class VisualEvidence:
    """Signals extracted from a complaint photo.

    Either the keyword signals (labels, objects, text, web entities) are
    populated, or a multimodal model supplied ``direct_department``
    straight away.  Both may be empty when every analyser failed.
    """

    labels: list[ScoredTerm] = field(default_factory=list)
    objects: list[ScoredTerm] = field(default_factory=list)
    text: str = ""
    web_entities: list[ScoredTerm] = field(default_factory=list)
    direct_department: str | None = None
    direct_reason: str | None = None
    source: str = "none"

    @property
    def is_empty(self) -> bool:
        return not (
            self.labels or self.objects or self.text or self.web_entities or self.direct_department
        )


class ClassificationResult(BaseModel):
    """Department decision with the evidence that produced it."""

    department: Department
    confidence: int = Field(default=0, ge=0, le=100)
    evidence_labels: list[str] = Field(default_factory=list)
    matched_keywords: list[str] = Field(default_factory=list)
    reason: str = ""
    source: str = "keyword-mapping"
    scores: dict[str, float] = Field(default_factory=dict)


@dataclass(slots=True)
class DuplicateCheckResult:
    """Verdict of the integrity filter."""

    is_duplicate: bool = False
    duplicate_of: str | None = None
    is_fake: bool = False
    remarks: str = ""

    @property
    def flagged(self) -> bool:
        return self.is_fake or self.is_duplicate

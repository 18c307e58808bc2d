"""Department detection from complaint photos.

Two-stage decision:

1. A direct department named by a multimodal model is accepted at a fixed
   confidence when it is an exact (case-insensitive) match against the
   :class:`Department` enumeration.
2. Otherwise every visual term (labels, objects, web entities) is matched
   against each department's keyword list by substring containment in
   either direction.  Contributions are ``score x department weight x
   source weight``; every keyword found in on-image text adds a flat
   ``0.5 x department weight``.

Ranking is by score descending with ties resolved in catalogue order, so
identical evidence always yields the same department.
"""

from __future__ import annotations

from typing import Final

import structlog

from config.departments import DEPARTMENTS, DepartmentConfig
from src.models.enums import Department, EvidenceSource
from src.models.triage import ClassificationResult, ScoredTerm, VisualEvidence
from src.services.classifier import ClassifierGateway

logger = structlog.get_logger(__name__)

SOURCE_WEIGHTS: Final[dict[EvidenceSource, float]] = {
    EvidenceSource.LABEL: 1.2,
    EvidenceSource.OBJECT: 1.0,
    EvidenceSource.WEB: 0.8,
}

TEXT_HIT_WEIGHT: Final[float] = 0.5
DEFAULT_WEB_SCORE: Final[float] = 0.5
MAX_CONFIDENCE: Final[int] = 99
_LABELS_REPORTED: Final[int] = 8
_KEYWORDS_IN_REASON: Final[int] = 5


def _term_matches(term: str, keyword: str) -> bool:
    return keyword in term or term in keyword


def _score_department(
    config: DepartmentConfig,
    terms: list[ScoredTerm],
    text: str,
) -> tuple[float, list[str]]:
    score = 0.0
    matched: list[str] = []
    for item in terms:
        for keyword in config.keywords:
            if _term_matches(item.term, keyword):
                score += item.score * config.weight * SOURCE_WEIGHTS[item.source]
                if keyword not in matched:
                    matched.append(keyword)
    if text:
        for keyword in config.keywords:
            if keyword in text:
                score += TEXT_HIT_WEIGHT * config.weight
                if keyword not in matched:
                    matched.append(f"text:{keyword}")
    return score, matched


def map_to_department(
    evidence: VisualEvidence,
    direct_confidence: int = 85,
) -> ClassificationResult:
    """Pure mapping from visual evidence to a department decision."""
    evidence_labels = [t.term for t in evidence.labels[:_LABELS_REPORTED]]
    source = evidence.source if evidence.source != "none" else "keyword-mapping"

    direct = Department.match(evidence.direct_department)
    if direct is not None:
        return ClassificationResult(
            department=direct,
            confidence=direct_confidence,
            evidence_labels=evidence_labels,
            reason=evidence.direct_reason or f"AI vision detected: {direct.value}",
            source=source,
        )

    terms = [
        *evidence.labels,
        *evidence.objects,
        *(
            t if t.score else ScoredTerm(t.term, DEFAULT_WEB_SCORE, t.source)
            for t in evidence.web_entities
        ),
    ]
    terms = [t for t in terms if t.term]
    text = evidence.text.lower()

    scores: dict[str, float] = {}
    matched: dict[str, list[str]] = {}
    for name, config in DEPARTMENTS.items():
        scores[name], matched[name] = _score_department(config, terms, text)

    # sorted() is stable, so equal scores keep catalogue order.
    ranked = sorted(
        ((name, score) for name, score in scores.items() if score > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    if not ranked:
        return ClassificationResult(
            department=Department.GENERAL,
            confidence=0,
            evidence_labels=evidence_labels,
            reason="Could not match image to a specific department",
            source=source,
            scores=scores,
        )

    top_name, top_score = ranked[0]
    total = sum(score for _, score in ranked)
    # Half-up rounding, so an exact 62.5% share reads 63.
    confidence = min(int(top_score / total * 100 + 0.5), MAX_CONFIDENCE)
    keywords = matched[top_name]
    return ClassificationResult(
        department=Department(top_name),
        confidence=confidence,
        evidence_labels=evidence_labels,
        matched_keywords=keywords,
        reason=f"Detected: {', '.join(keywords[:_KEYWORDS_IN_REASON])}",
        source=source,
        scores={name: round(score, 4) for name, score in ranked[:3]},
    )


class DepartmentDetector:
    """Resolves a department for a photo through the classifier gateway."""

    def __init__(self, gateway: ClassifierGateway, direct_confidence: int = 85) -> None:
        self._gateway = gateway
        self._direct_confidence = direct_confidence

    async def detect(self, photo: str) -> ClassificationResult:
        evidence = await self._gateway.classify_image(photo)
        result = map_to_department(evidence, self._direct_confidence)
        logger.info(
            "department.detected",
            department=result.department.value,
            confidence=result.confidence,
            source=result.source,
            matched=result.matched_keywords[:_KEYWORDS_IN_REASON],
        )
        return result

"""Fake and duplicate detection for complaint descriptions.

The local pass always runs first and short-circuits: a fake description
is never checked for duplication.  A remote second opinion is consulted
only when the local pass found nothing and there are candidate
complaints to compare against, and it can only *add* a finding.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Final

import structlog

from src.models.complaint import Complaint
from src.models.triage import DuplicateCheckResult
from src.services.classifier import ClassifierGateway, extract_json

logger = structlog.get_logger(__name__)

KNOWN_WORDS: Final[frozenset[str]] = frozenset({
    # common English
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had", "her", "was", "one",
    "our", "out", "has", "his", "how", "its", "may", "who", "did", "get", "new", "now", "old",
    "see", "way", "day", "too", "any", "been", "from", "have", "here", "just", "like", "long",
    "make", "many", "more", "only", "over", "such", "take", "than", "them", "then", "very",
    "when", "come", "could", "into", "made", "after", "back", "also", "with", "this", "that",
    "they", "what", "will", "about", "there", "their", "which", "would", "other", "these",
    "some", "time", "being", "does", "where", "before", "between", "each", "even", "much",
    "most", "same", "still", "should", "through", "while", "under", "never", "every", "since",
    "need", "help", "please", "because", "near", "facing", "causing", "people", "daily",
    # civic complaints
    "road", "water", "street", "light", "area", "working", "broken", "damage", "damaged",
    "pipe", "pipeline", "drain", "drainage", "block", "blocked", "garbage", "bus", "power",
    "electricity", "supply", "issue", "problem", "repair", "fix", "fixed", "days", "weeks",
    "months", "public", "health", "safety", "danger", "dangerous", "flood", "flooded",
    "sewage", "pothole", "pavement", "footpath", "bridge", "building", "house", "school",
    "hospital", "temple", "church", "mosque", "park", "garden", "traffic", "signal",
    "lamp", "pole", "wire", "cable", "tank", "well", "bore", "motor", "pump", "valve",
    "meter", "bill", "connection", "complaint", "department", "office", "officer",
    "collector", "corporation", "municipality", "panchayat", "ward", "zone", "district",
    "village", "town", "city", "nagar", "colony", "layout", "main", "cross", "junction",
    "corner", "side", "front", "behind", "opposite", "next", "above", "below",
    "morning", "evening", "night", "today", "yesterday", "week", "month", "year",
    "leaking", "overflowing", "stagnant", "contaminated", "polluted", "dirty", "clean",
    "mosquito", "insects", "smell", "stench", "noise", "dust", "smoke", "illegal",
    "construction", "encroachment", "parking", "speed", "accident", "fallen", "tree",
    "branch", "fence", "wall", "gate", "roof", "floor", "ceiling", "window", "door",
    "transformer", "generator", "inverter", "streetlight", "manhole", "cover",
    "cracked", "collapse", "collapsed", "sinking", "eroded", "erosion", "landslide",
    "request", "suggestion", "improvement", "install", "installation", "upgrade",
})

# Words this long are presumed real even when not in KNOWN_WORDS.
PRESUMED_REAL_LENGTH: Final[int] = 6
MIN_DESCRIPTION_LENGTH: Final[int] = 10

_NON_WORD = re.compile(r"[^a-z0-9\s]")
_REPEATED_CHAR = re.compile(r"(.)\1{4,}")
_KEYBOARD_MASH = re.compile(r"asdf|qwert|zxcv|hjkl|uiop|bnm|wasd|jkl|fgh", re.IGNORECASE)

REMARK_VALID: Final[str] = "Complaint appears valid and unique"

_DUPLICATE_PROMPT: Final[str] = """\
You are an AI assistant for the Tamil Nadu Service Management Portal.
Analyze this NEW complaint and determine if it is:
1. A DUPLICATE of an existing complaint (same issue, same area, same problem)
2. FAKE or nonsensical (gibberish text, impossible scenario, spam, test data)

NEW COMPLAINT:
Department: {department}
Area: {area}
Description: "{description}"

EXISTING COMPLAINTS IN SAME DEPARTMENT:
{existing}

Respond in this EXACT JSON format only (no markdown, no code blocks, no extra text):
{{"isDuplicate": false, "duplicateOf": null, "isFake": false, "remarks": "Brief analysis"}}

Rules:
- isDuplicate: true ONLY if description closely matches an existing complaint in same area
- duplicateOf: the ticketId of the matching complaint, or null
- isFake: true if the description is gibberish, nonsensical, clearly fabricated, or spam
- remarks: brief 1-line explanation of your analysis"""


def extract_words(text: str) -> list[str]:
    """Lower-cased alphanumeric tokens longer than two characters."""
    cleaned = _NON_WORD.sub("", text.lower())
    return [w for w in cleaned.split() if len(w) > 2]


def jaccard_similarity(words_a: Sequence[str], words_b: Sequence[str]) -> float:
    set_a, set_b = set(words_a), set(words_b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def percent(fraction: float) -> int:
    """Whole percentage, halves rounded up."""
    return int(fraction * 100 + 0.5)


def is_known_word(word: str) -> bool:
    return word in KNOWN_WORDS or len(word) >= PRESUMED_REAL_LENGTH


def check_fake(description: str, known_word_ratio: float = 0.3) -> str | None:
    """Return the remark for the first fake-content rule that fires, else ``None``."""
    text = description.strip()
    if len(text) < MIN_DESCRIPTION_LENGTH:
        return "Description too short to be a valid complaint"

    words = extract_words(text)
    if not words:
        return "No meaningful words found in description"

    if _REPEATED_CHAR.search(text):
        return "Description contains repeated character patterns (spam)"

    ratio = sum(1 for w in words if is_known_word(w)) / len(words)
    if ratio < known_word_ratio and len(words) >= 3:
        return f"Description appears to be gibberish (only {percent(ratio)}% recognizable words)"

    if len(_KEYBOARD_MASH.findall(text)) >= 2:
        return "Description appears to be keyboard-mashing / random input"

    if len(set(words)) == 1 and len(words) > 2:
        return "Description is just the same word repeated"

    return None


def find_duplicate(
    description: str,
    area: str,
    existing: Sequence[Complaint],
    threshold: float = 0.6,
) -> tuple[Complaint, float] | None:
    """Best same-area match at or above *threshold*; earliest candidate wins ties."""
    new_words = extract_words(description)
    best: Complaint | None = None
    best_score = 0.0
    # Candidates arrive newest first; walk them oldest first so the
    # earliest ticket keeps ties, even between equal timestamps.
    for candidate in sorted(reversed(existing), key=lambda c: c.created_at):
        if candidate.area != area:
            continue
        similarity = jaccard_similarity(new_words, extract_words(candidate.description))
        if similarity > best_score:
            best, best_score = candidate, similarity
    if best is not None and best_score >= threshold:
        return best, best_score
    return None


def local_check(
    description: str,
    area: str,
    existing: Sequence[Complaint],
    *,
    similarity_threshold: float = 0.6,
    known_word_ratio: float = 0.3,
) -> DuplicateCheckResult:
    fake_remark = check_fake(description, known_word_ratio)
    if fake_remark is not None:
        return DuplicateCheckResult(is_fake=True, remarks=fake_remark)

    match = find_duplicate(description, area, existing, similarity_threshold)
    if match is not None:
        original, similarity = match
        return DuplicateCheckResult(
            is_duplicate=True,
            duplicate_of=original.ticket_id,
            remarks=f"{percent(similarity)}% similar to existing complaint {original.ticket_id}",
        )
    return DuplicateCheckResult(remarks=REMARK_VALID)


class IntegrityFilter:
    """Runs the local checks and, when they pass, an optional remote second opinion."""

    def __init__(
        self,
        gateway: ClassifierGateway,
        *,
        similarity_threshold: float = 0.6,
        known_word_ratio: float = 0.3,
        remote_context_limit: int = 15,
    ) -> None:
        self._gateway = gateway
        self._similarity_threshold = similarity_threshold
        self._known_word_ratio = known_word_ratio
        self._remote_context_limit = remote_context_limit

    async def check(
        self,
        description: str,
        department: str,
        area: str,
        existing: Sequence[Complaint],
    ) -> DuplicateCheckResult:
        local = local_check(
            description,
            area,
            existing,
            similarity_threshold=self._similarity_threshold,
            known_word_ratio=self._known_word_ratio,
        )
        if local.flagged:
            logger.info(
                "integrity.local_flagged",
                is_fake=local.is_fake,
                duplicate_of=local.duplicate_of,
                remarks=local.remarks,
            )
            return local

        if not existing:
            return local

        remote = await self._second_opinion(description, department, area, existing)
        if remote is None or not remote.flagged:
            return local
        logger.info(
            "integrity.remote_flagged",
            is_fake=remote.is_fake,
            duplicate_of=remote.duplicate_of,
            remarks=remote.remarks,
        )
        return remote

    async def _second_opinion(
        self,
        description: str,
        department: str,
        area: str,
        existing: Sequence[Complaint],
    ) -> DuplicateCheckResult | None:
        context = existing[: self._remote_context_limit]
        summaries = "\n".join(
            f'[{c.ticket_id}] "{c.description}" (Area: {c.area}, Status: {c.status})'
            for c in context
        )
        prompt = _DUPLICATE_PROMPT.format(
            department=department,
            area=area,
            description=description,
            existing=summaries,
        )
        reply = await self._gateway.classify_text(prompt, max_tokens=150)
        if reply is None:
            return None

        parsed = extract_json(reply)
        if not isinstance(parsed, dict):
            logger.warning("integrity.remote_unparsable", reply=reply[:100])
            return None

        is_fake = bool(parsed.get("isFake"))
        duplicate_of = parsed.get("duplicateOf") or None
        known_tickets = {c.ticket_id for c in context}
        # A duplicate claim must name a ticket we actually showed the model.
        is_duplicate = bool(parsed.get("isDuplicate")) and duplicate_of in known_tickets
        return DuplicateCheckResult(
            is_duplicate=is_duplicate and not is_fake,
            duplicate_of=duplicate_of if is_duplicate and not is_fake else None,
            is_fake=is_fake,
            remarks=str(parsed.get("remarks") or ""),
        )

"""Priority assignment for incoming complaints.

The remote classifier is asked for a single priority word first.  When it
is unavailable, or its reply does not contain a valid level, the local
keyword scorer decides.  The local scorer is a pure function of
``(description, department)``.
"""

from __future__ import annotations

import re
from typing import Final

import structlog

from config.departments import get_department
from src.models.enums import Priority
from src.services.classifier import ClassifierGateway

logger = structlog.get_logger(__name__)

PRIORITY_KEYWORDS: Final[dict[Priority, tuple[str, ...]]] = {
    Priority.CRITICAL: (
        "flood", "fire", "collapse", "collapsed", "accident", "danger", "dangerous",
        "emergency", "fallen", "burst", "explosion", "electrocution", "death", "dead",
        "drowning", "sinkhole", "gas leak", "building crack", "bridge damage",
        "short circuit", "live wire", "exposed wire", "water contamination",
        "epidemic", "outbreak", "major damage", "life threatening", "critical",
        "fallen tree", "road cave", "wall collapse", "roof collapse", "sewage overflow",
    ),
    Priority.HIGH: (
        "broken", "pothole", "leak", "leaking", "sewage", "blocked", "damaged",
        "contaminated", "overflow", "overflowing", "no water", "no electricity",
        "power cut", "power outage", "blackout", "road damage", "crack", "cracked",
        "waterlogging", "stagnant water", "mosquito", "garbage pile", "dump",
        "illegal dumping", "unsafe", "hazard", "risk", "urgent",
        "no supply", "pipeline break", "main road", "highway", "bus breakdown",
        "traffic signal", "drainage block", "manhole open", "missing cover",
    ),
    Priority.MEDIUM: (
        "not working", "malfunction", "delayed", "dirty", "slow", "complaint",
        "issue", "problem", "repair", "maintenance", "streetlight", "lamp",
        "footpath", "pavement", "speed breaker", "signal", "noise", "dust",
        "irregular", "faulty", "poor condition", "needs attention", "overdue",
        "pending", "unresolved", "partially", "intermittent", "sometimes",
    ),
    Priority.LOW: (
        "request", "suggestion", "new", "improvement", "inquiry", "information",
        "feedback", "install", "installation", "propose", "plan", "future",
        "beautification", "painting", "garden", "park", "bench", "sign board",
        "name board", "bus stop", "shelter", "upgrade", "enhance", "minor",
    ),
}

KEYWORD_WEIGHTS: Final[dict[Priority, float]] = {
    Priority.CRITICAL: 3.0,
    Priority.HIGH: 2.0,
    Priority.MEDIUM: 1.0,
    Priority.LOW: 1.0,
}

_PRIORITY_PROMPT: Final[str] = """\
You are an AI assistant for the Tamil Nadu Service Management Portal.
Analyze the following complaint and assign a priority level.

Department: {department}
Complaint: {description}

Consider these factors:
- Safety risk to public (Critical if immediate danger)
- Number of people affected
- Urgency of the issue
- Essential service disruption

Respond with ONLY one word - the priority level: Critical, High, Medium, or Low.

Examples:
- "Water pipeline burst flooding entire street" = Critical
- "Electricity pole fallen on road" = Critical
- "Streetlight not working for a week" = Medium
- "Pothole on main road" = High
- "Request for new bus stop" = Low"""

_PRIORITY_WORDS: Final[dict[Priority, re.Pattern[str]]] = {
    p: re.compile(rf"\b{p.value}\b", re.IGNORECASE) for p in Priority
}


def score_priority(description: str, department: str) -> dict[Priority, float]:
    """Keyword scores per level, including the department safety boost."""
    text = f"{description} {department}".lower()
    scores = {level: 0.0 for level in Priority}
    for level, keywords in PRIORITY_KEYWORDS.items():
        for keyword in keywords:
            if keyword in text:
                scores[level] += KEYWORD_WEIGHTS[level]

    config = get_department(department)
    if config is not None and config.critical_boost:
        scores[Priority.CRITICAL] += config.critical_boost
        scores[Priority.HIGH] += config.critical_boost * 0.5
    return scores


def local_priority(description: str, department: str) -> Priority:
    """Highest-scoring level; ties go Critical > High > Medium > Low."""
    scores = score_priority(description, department)
    # max() keeps the first maximum, and Priority iterates in precedence order.
    best = max(Priority, key=lambda level: scores[level])
    if scores[best] <= 0:
        return Priority.MEDIUM
    return best


def parse_priority(reply: str | None) -> Priority | None:
    if not reply:
        return None
    for level, pattern in _PRIORITY_WORDS.items():
        if pattern.search(reply):
            return level
    return None


class PriorityAssigner:
    def __init__(self, gateway: ClassifierGateway) -> None:
        self._gateway = gateway

    async def assign(self, description: str, department: str) -> Priority:
        prompt = _PRIORITY_PROMPT.format(department=department, description=description)
        reply = await self._gateway.classify_text(prompt, max_tokens=10)
        remote = parse_priority(reply)
        if remote is not None:
            logger.info("priority.remote", priority=remote.value, department=department)
            return remote

        result = local_priority(description, department)
        logger.info("priority.local", priority=result.value, department=department)
        return result

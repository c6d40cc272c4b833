"""
Keyword-based symptom risk scoring.

Runs before any LLM call so that obviously dangerous symptom descriptions are
flagged even when the model is unavailable.
"""
from typing import Iterable, Optional

from telehealth.models.chatbot import DetectedFlag, RiskAssessment

EMERGENCY_KEYWORDS = [
    "chest pain",
    "difficulty breathing",
    "severe headache",
    "confusion",
    "unconscious",
]

HIGH_RISK_KEYWORDS = [
    "blood",
    "severe pain",
    "can't move",
    "numbness",
    "vision loss",
]

SEVERITY_SCORES = {
    "mild": 1,
    "moderate": 2,
    "severe": 3,
    "extreme": 4,
}

HIGH_RISK_BODY_PARTS = ("Chest", "Head")

EMERGENCY_WEIGHT = 4
HIGH_RISK_WEIGHT = 2


def urgency_for_score(score: int) -> str:
    if score >= 6:
        return "emergency"
    if score >= 4:
        return "high"
    if score >= 2:
        return "moderate"
    return "low"


def assess_risk(
    symptoms: str,
    severity: Optional[str] = None,
    body_parts: Iterable[str] = (),
) -> RiskAssessment:
    """Score a free-text symptom description"""
    text = (symptoms or "").lower()
    flags = []
    score = 0

    for keyword in EMERGENCY_KEYWORDS:
        if keyword in text:
            flags.append(DetectedFlag(type="emergency", keyword=keyword, weight=EMERGENCY_WEIGHT))
            score += EMERGENCY_WEIGHT

    for keyword in HIGH_RISK_KEYWORDS:
        if keyword in text:
            flags.append(DetectedFlag(type="high_risk", keyword=keyword, weight=HIGH_RISK_WEIGHT))
            score += HIGH_RISK_WEIGHT

    score += SEVERITY_SCORES.get((severity or "").lower(), 1)

    selected = set(body_parts or ())
    score += sum(1 for part in HIGH_RISK_BODY_PARTS if part in selected)

    return RiskAssessment(
        risk_score=score,
        urgency_level=urgency_for_score(score),
        detected_flags=flags,
        recommends_emergency_action=score >= 6,
    )


def severity_to_urgency(severity: Optional[str]) -> str:
    """Map an LLM severity assessment onto the urgency scale"""
    mapping = {
        "mild": "low",
        "moderate": "medium",
        "severe": "high",
        "urgent": "high",
        "critical": "emergency",
        "emergency": "emergency",
    }
    return mapping.get((severity or "").lower(), "medium")

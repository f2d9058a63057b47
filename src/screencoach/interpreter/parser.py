"""Parse free-form model replies into structured analysis results.

The model is asked to answer with ``Label: value`` lines, but replies
are only loosely formatted in practice. Every field therefore has a
fallback and parsing never raises.
"""

from __future__ import annotations

import logging
import re

from screencoach.domain.models import AnalysisState, ConfidenceLevel, ParsedAnalysis

logger = logging.getLogger(__name__)

OBSERVATION_FALLBACK = "Scanning UI..."
MICRO_ASSIST_FALLBACK = "Processing session..."


def _label_pattern(label: str) -> re.Pattern[str]:
    return re.compile(rf"{re.escape(label)}:[ \t]*(.*)", re.IGNORECASE)


_STATE_RE = _label_pattern("State")
_OBSERVATION_RE = _label_pattern("Observation")
_MICRO_ASSIST_RE = _label_pattern("Micro-Assist")
_AUTOMATION_RE = _label_pattern("Automation")
_CONFIDENCE_RE = _label_pattern("Confidence")

# First match wins, checked in this order.
_STATE_RULES: tuple[tuple[tuple[str, ...], AnalysisState], ...] = (
    (("achieved", "completed", "success"), AnalysisState.GOAL_ACHIEVED),
    (("clarif",), AnalysisState.CLARIFICATION_NEEDED),
    (("distracted",), AnalysisState.DISTRACTED),
    (("friction",), AnalysisState.FRICTION_DETECTED),
    (("error",), AnalysisState.ERROR_DETECTED),
    (("smooth",), AnalysisState.SMOOTH),
)


def _capture(pattern: re.Pattern[str], text: str) -> str | None:
    """Return the first captured value for a label, or None if absent/blank."""
    match = pattern.search(text)
    if match is None:
        return None
    # Tolerate markdown emphasis such as "**State:** Smooth"
    value = match.group(1).strip().strip("*_").strip()
    return value or None


def classify_state(raw_state: str | None) -> AnalysisState:
    """Map the raw State value to an AnalysisState using ordered substring rules."""
    if not raw_state:
        return AnalysisState.UNKNOWN
    lowered = raw_state.lower()
    for needles, state in _STATE_RULES:
        if any(needle in lowered for needle in needles):
            return state
    return AnalysisState.UNKNOWN


def classify_confidence(raw_confidence: str | None) -> ConfidenceLevel:
    lowered = (raw_confidence or "").lower()
    if "high" in lowered:
        return ConfidenceLevel.HIGH
    if "low" in lowered:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.MEDIUM


def parse_response(raw_text: str | None) -> ParsedAnalysis:
    """Parse a raw model reply into a ParsedAnalysis.

    Args:
        raw_text: The model's reply. ``None`` is treated as empty.

    Returns:
        A fully populated ParsedAnalysis. Missing labels fall back to
        defaults; this function never raises.
    """
    text = raw_text or ""

    automation = _capture(_AUTOMATION_RE, text)
    if automation is not None and automation.lower() == "none":
        automation = None

    result = ParsedAnalysis(
        state=classify_state(_capture(_STATE_RE, text)),
        observation=_capture(_OBSERVATION_RE, text) or OBSERVATION_FALLBACK,
        micro_assist=_capture(_MICRO_ASSIST_RE, text) or MICRO_ASSIST_FALLBACK,
        confidence=classify_confidence(_capture(_CONFIDENCE_RE, text)),
        automation_suggestion=automation,
    )
    if result.state is AnalysisState.UNKNOWN and text:
        logger.debug("No recognisable State in model reply: %s", text[:200])
    return result

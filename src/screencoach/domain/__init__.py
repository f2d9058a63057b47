"""Domain models for screencoach."""

from screencoach.domain.models import (
    UNINTERESTING_STATES,
    AnalysisContext,
    AnalysisOutcome,
    AnalysisState,
    CapturedFrame,
    ChatRole,
    CoachPhase,
    ConfidenceLevel,
    ConversationTurn,
    Credential,
    FileAttachment,
    ParsedAnalysis,
    PastInsight,
    ProviderKind,
)

__all__ = [
    "UNINTERESTING_STATES",
    "AnalysisContext",
    "AnalysisOutcome",
    "AnalysisState",
    "CapturedFrame",
    "ChatRole",
    "CoachPhase",
    "ConfidenceLevel",
    "ConversationTurn",
    "Credential",
    "FileAttachment",
    "ParsedAnalysis",
    "PastInsight",
    "ProviderKind",
]

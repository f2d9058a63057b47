"""Analysis and chat orchestration.

Public API:
    AnalysisOrchestrator -- Periodic screen analysis loop
    ChatOrchestrator -- User-initiated chat side channel
    FailoverRunner -- Shared retry/rotation loop
"""

from screencoach.coach.analysis import AnalysisOrchestrator, CycleReport
from screencoach.coach.chat import CHAT_ERROR_TEXT, ChatOrchestrator
from screencoach.coach.failover import (
    BackgroundTasks,
    FailoverResult,
    FailoverRunner,
    NoCredentialsError,
    PoolExhaustedError,
    build_provider_registry,
)

__all__ = [
    "AnalysisOrchestrator",
    "BackgroundTasks",
    "CHAT_ERROR_TEXT",
    "ChatOrchestrator",
    "CycleReport",
    "FailoverResult",
    "FailoverRunner",
    "NoCredentialsError",
    "PoolExhaustedError",
    "build_provider_registry",
]

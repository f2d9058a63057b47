"""Core domain models for the screencoach system.

These models represent the data flowing through the system: captured
screen frames, provider credentials, structured analysis outcomes
parsed from model text, chat turns, and the context carried between
analysis cycles.
"""

from __future__ import annotations

import base64
import enum
import mimetypes
import time
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class AnalysisState(str, enum.Enum):
    """What the model concluded about the user's progress."""

    SMOOTH = "Smooth"
    FRICTION_DETECTED = "Friction Detected"
    ERROR_DETECTED = "Error Detected"
    DISTRACTED = "Distracted"
    GOAL_ACHIEVED = "Goal Achieved"
    CLARIFICATION_NEEDED = "Clarification Needed"
    UNKNOWN = "Unknown"


class ConfidenceLevel(str, enum.Enum):
    """Model's self-reported confidence."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NONE = "---"


class ProviderKind(str, enum.Enum):
    """Which provider backend a credential belongs to."""

    GEMINI = "gemini"
    OPENAI = "openai"


class CoachPhase(str, enum.Enum):
    """Lifecycle phase of the analysis orchestrator."""

    IDLE = "idle"
    CAPTURING = "capturing"
    ANALYZING = "analyzing"
    COOLDOWN = "cooldown"
    HALTED = "halted"


class ChatRole(str, enum.Enum):
    USER = "user"
    MODEL = "model"


# Outcomes in these states are never appended to the visible history log.
UNINTERESTING_STATES = frozenset({AnalysisState.SMOOTH, AnalysisState.UNKNOWN})


# ---------------------------------------------------------------------------
# Capture Models
# ---------------------------------------------------------------------------


class CapturedFrame(BaseModel):
    """A single JPEG-encoded screen frame.

    The frame is opaque to the orchestration layer; providers read
    ``jpeg`` (or ``base64``) to build their requests.
    """

    model_config = ConfigDict(frozen=True)

    jpeg: bytes = Field(description="JPEG-encoded image bytes")
    width: int = Field(ge=0)
    height: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=datetime.now)
    frame_number: int = Field(default=0, ge=0)
    source_device: str = Field(default="screen")

    @property
    def base64(self) -> str:
        return base64.b64encode(self.jpeg).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:image/jpeg;base64,{self.base64}"


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class Credential(BaseModel):
    """One opaque API secret and the provider it was classified as."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(min_length=1)
    provider_kind: ProviderKind

    @property
    def masked(self) -> str:
        """Loggable form that never reveals the full secret."""
        if len(self.value) <= 8:
            return "*" * len(self.value)
        return f"{self.value[:3]}...{self.value[-4:]}"

    def __repr__(self) -> str:
        return f"Credential({self.provider_kind.value}, {self.masked})"

    __str__ = __repr__


# ---------------------------------------------------------------------------
# Analysis Models
# ---------------------------------------------------------------------------


class ParsedAnalysis(BaseModel):
    """Structured fields extracted from one raw model reply.

    This is an analysis outcome without the per-cycle metadata
    (timestamp, screenshot, goal) that the orchestrator attaches.
    """

    model_config = ConfigDict(frozen=True)

    state: AnalysisState = AnalysisState.UNKNOWN
    observation: str
    micro_assist: str
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    automation_suggestion: str | None = None


class AnalysisOutcome(ParsedAnalysis):
    """Result of one successful analysis cycle. Immutable once created."""

    timestamp: int = Field(default_factory=now_ms, description="ms since epoch")
    screenshot: CapturedFrame | None = Field(default=None, repr=False)
    goal: str | None = None

    @classmethod
    def from_parsed(
        cls,
        parsed: ParsedAnalysis,
        *,
        screenshot: CapturedFrame | None = None,
        goal: str | None = None,
        timestamp: int | None = None,
    ) -> AnalysisOutcome:
        return cls(
            **parsed.model_dump(),
            timestamp=timestamp if timestamp is not None else now_ms(),
            screenshot=screenshot,
            goal=goal,
        )

    def same_directive(self, other: AnalysisOutcome | None) -> bool:
        """Whether ``other`` carries the same state and micro-assist."""
        return (
            other is not None
            and other.state == self.state
            and other.micro_assist == self.micro_assist
        )


class AnalysisContext(BaseModel):
    """Continuity carried from the previous successful cycle."""

    model_config = ConfigDict(frozen=True)

    last_observation: str
    last_instruction: str

    @classmethod
    def from_outcome(cls, outcome: ParsedAnalysis) -> AnalysisContext:
        return cls(
            last_observation=outcome.observation,
            last_instruction=outcome.micro_assist,
        )


class PastInsight(BaseModel):
    """A similar past scenario retrieved from the vector store."""

    score: float = 0.0
    observation: str = ""
    micro_assist: str = Field(default="", alias="microAssist")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Chat Models
# ---------------------------------------------------------------------------


class ConversationTurn(BaseModel):
    """One message in the chat side channel."""

    model_config = ConfigDict(frozen=True)

    role: ChatRole
    text: str
    timestamp: int = Field(default_factory=now_ms)


class FileAttachment(BaseModel):
    """A user-supplied file sent along with a chat message.

    Images carry base64 ``data``; any other file carries its text.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    mime_type: str
    data: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @classmethod
    def from_path(cls, path: Path | str) -> FileAttachment:
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        mime_type = mime_type or "text/plain"
        if mime_type.startswith("image/"):
            data = base64.b64encode(path.read_bytes()).decode("ascii")
        else:
            data = path.read_text(encoding="utf-8", errors="replace")
        return cls(name=path.name, mime_type=mime_type, data=data)

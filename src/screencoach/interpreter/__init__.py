"""Vision provider module for screencoach.

Provides a provider-agnostic interface for sending screen frames and
chat messages to vision-capable models, plus the parser that turns
their replies into structured analysis results.

Public API:
    VisionProvider -- Abstract base class
    ProviderError -- Classified provider failure
    parse_response -- Response parser
    GeminiProvider -- Google Gemini implementation
    OpenAIProvider -- OpenAI implementation
"""

from screencoach.interpreter.base import ErrorKind, ProviderError, VisionProvider, classify_error
from screencoach.interpreter.parser import parse_response

__all__ = [
    "ErrorKind",
    "ProviderError",
    "VisionProvider",
    "classify_error",
    "parse_response",
    "GeminiProvider",
    "OpenAIProvider",
]


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "GeminiProvider":
        from screencoach.interpreter.gemini import GeminiProvider
        return GeminiProvider
    if name == "OpenAIProvider":
        from screencoach.interpreter.openai import OpenAIProvider
        return OpenAIProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

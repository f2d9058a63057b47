"""Chat and analysis sharing one credential pool at the same time."""

from __future__ import annotations

import asyncio

import pytest

from screencoach.coach.analysis import AnalysisOrchestrator
from screencoach.coach.chat import ChatOrchestrator
from screencoach.domain.models import AnalysisState, ConfidenceLevel, ParsedAnalysis
from screencoach.interpreter.base import ErrorKind, ProviderError


def make_parsed() -> ParsedAnalysis:
    return ParsedAnalysis(
        state=AnalysisState.FRICTION_DETECTED,
        observation="User is editing a form",
        micro_assist="Click Save",
        confidence=ConfidenceLevel.HIGH,
    )


def quota_error() -> ProviderError:
    return ProviderError("429 RESOURCE_EXHAUSTED", kind=ErrorKind.QUOTA, provider="gemini")


def yielding(results):
    """Side effect that yields to the loop before each result, so calls interleave."""
    pending = list(results)

    async def call(*args, **kwargs):
        await asyncio.sleep(0)
        result = pending.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    return call


class TestSharedPool:
    @pytest.mark.asyncio
    async def test_concurrent_rotation_commits_a_working_key(
        self, runner, pool, quota, gemini_provider, mock_frame_source, mock_backend,
    ) -> None:
        coach = AnalysisOrchestrator(mock_frame_source, runner, goal="Ship the release")
        chat = ChatOrchestrator(runner, frame_source=mock_frame_source, backend=mock_backend)
        gemini_provider.analyze_frame.side_effect = yielding([quota_error(), make_parsed()])
        gemini_provider.send_chat.side_effect = yielding([quota_error(), quota_error(), "Use Ctrl+S"])

        await coach.start(schedule=False)
        report, reply = await asyncio.gather(coach.run_cycle(), chat.send("How do I save?"))

        assert report.outcome is not None
        assert report.outcome.micro_assist == "Click Save"
        assert reply.text == "Use Ctrl+S"

        analysis_keys = [c.args[2].value for c in gemini_provider.analyze_frame.await_args_list]
        chat_keys = [c.args[4].value for c in gemini_provider.send_chat.await_args_list]
        working = {analysis_keys[-1], chat_keys[-1]}
        assert pool.credentials[pool.current_index].value in working
        assert quota.usage() == 2

"""Bounded retry with credential rotation, shared by both orchestrators.

One call is tried against at most ``len(pool)`` credentials, strictly
one after another, starting at the pool's committed index. Quota and
network failures rotate to the next credential after a fixed backoff;
any other failure ends the call immediately. On success the used index
is committed and the shared daily counter incremented, both under the
pool lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from screencoach.credentials.pool import CredentialPool
from screencoach.credentials.quota import QuotaGuard
from screencoach.domain.models import Credential, ProviderKind
from screencoach.interpreter.base import ProviderError, VisionProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

Attempt = Callable[[VisionProvider, Credential], Awaitable[T]]


class NoCredentialsError(Exception):
    """Raised when a call is attempted against an empty credential pool."""


class PoolExhaustedError(Exception):
    """Raised when every credential failed with a retryable error."""

    def __init__(self, attempts: int, last_error: ProviderError | None = None) -> None:
        super().__init__(f"All {attempts} credential(s) exhausted")
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class FailoverResult(Generic[T]):
    value: T
    index: int
    attempts: int
    credential: Credential


class FailoverRunner:
    """Runs one logical call with rotation across the credential pool.

    Example usage::

        runner = FailoverRunner(pool, quota, {ProviderKind.GEMINI: gemini})
        result = await runner.run(
            lambda provider, cred: provider.analyze_frame(frame, goal, cred)
        )
    """

    def __init__(
        self,
        pool: CredentialPool,
        quota: QuotaGuard,
        providers: Mapping[ProviderKind, VisionProvider],
        retry_backoff: float = 0.2,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._pool = pool
        self._quota = quota
        self._providers = dict(providers)
        self._retry_backoff = retry_backoff
        self._sleep = sleep

    @property
    def pool(self) -> CredentialPool:
        return self._pool

    @property
    def quota(self) -> QuotaGuard:
        return self._quota

    def provider_for(self, credential: Credential) -> VisionProvider:
        try:
            return self._providers[credential.provider_kind]
        except KeyError:
            raise ProviderError(
                f"No provider configured for {credential.provider_kind.value} credentials",
                provider=credential.provider_kind.value,
            ) from None

    async def run(self, attempt: Attempt[T], label: str = "call") -> FailoverResult[T]:
        """Try ``attempt`` across the pool until one credential succeeds.

        Raises:
            NoCredentialsError: If the pool is empty.
            PoolExhaustedError: If every credential failed retryably.
            ProviderError: On the first non-retryable failure.
        """
        async with self._pool.lock:
            credentials = self._pool.credentials
            generation = self._pool.generation
            start_index = self._pool.current_index

        size = len(credentials)
        if size == 0:
            raise NoCredentialsError("No API credentials configured")

        index = start_index
        attempts = 0
        last_error: ProviderError | None = None
        while attempts < size:
            credential = credentials[index]
            try:
                value = await attempt(self.provider_for(credential), credential)
            except ProviderError as e:
                if not e.retryable:
                    logger.warning(
                        "%s rejected by credential #%d (%s): %s",
                        label, index, credential.masked, e,
                    )
                    raise
                attempts += 1
                last_error = e
                logger.warning(
                    "%s failed on credential #%d (%s, %s), rotating",
                    label, index, credential.masked, e.kind.value,
                )
                index = (index + 1) % size
                if attempts < size:
                    await self._sleep(self._retry_backoff)
                continue

            attempts += 1
            async with self._pool.lock:
                if index != start_index and self._pool.generation == generation:
                    self._pool.commit(index)
                    self._pool.save()
                usage = self._quota.increment()
            logger.debug("%s succeeded on credential #%d (usage %d)", label, index, usage)
            return FailoverResult(value=value, index=index, attempts=attempts, credential=credential)

        logger.warning("%s: all %d credential(s) exhausted", label, size)
        raise PoolExhaustedError(attempts, last_error)


def build_provider_registry(settings: Any) -> dict[ProviderKind, VisionProvider]:
    """Instantiate one provider per kind from the providers config section."""
    from screencoach.interpreter.gemini import GeminiProvider
    from screencoach.interpreter.openai import OpenAIProvider

    cfg = settings.providers
    common = {
        "analysis_temperature": cfg.analysis_temperature,
        "analysis_max_tokens": cfg.analysis_max_tokens,
        "chat_temperature": cfg.chat_temperature,
        "chat_max_tokens": cfg.chat_max_tokens,
        "timeout": cfg.request_timeout,
    }
    return {
        ProviderKind.GEMINI: GeminiProvider(
            model=cfg.gemini_model,
            embedding_model=cfg.gemini_embedding_model,
            **common,
        ),
        ProviderKind.OPENAI: OpenAIProvider(
            model=cfg.openai_model,
            base_url=cfg.openai_base_url,
            **common,
        ),
    }


class BackgroundTasks:
    """Keeps detached tasks alive and logs their failures.

    Side effects such as backend logging run off the critical path; an
    exception inside one is logged and dropped here.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background task %s failed: %s", task.get_name(), exc)

    def __len__(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every pending task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

"""Credential pool with circular failover rotation.

The pool is an ordered list of API secrets, insertion order being
priority order, plus a pointer to the last credential that worked.
Both orchestrators read and advance the pointer, so every
read-modify-write goes through ``pool.lock``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable

from screencoach.domain.models import Credential, ProviderKind
from screencoach.storage.state import API_KEYS_KEY, LocalStateStore

logger = logging.getLogger(__name__)

OPENAI_KEY_PREFIX = "sk-"

_SEPARATORS = re.compile(r"[\s,]+")


def detect_provider_kind(value: str) -> ProviderKind:
    """Classify a secret by its leading token. Pure, no network."""
    if value.startswith(OPENAI_KEY_PREFIX):
        return ProviderKind.OPENAI
    return ProviderKind.GEMINI


def parse_credentials(text: str) -> list[str]:
    """Split pasted key text on newlines, commas and spaces.

    Empty entries are dropped and exact duplicates removed, keeping the
    first occurrence's position.
    """
    seen: set[str] = set()
    keys: list[str] = []
    for token in _SEPARATORS.split(text or ""):
        token = token.strip()
        if token and token not in seen:
            seen.add(token)
            keys.append(token)
    return keys


def make_credential(value: str) -> Credential:
    return Credential(value=value, provider_kind=detect_provider_kind(value))


class CredentialPool:
    """Ordered credentials with a committed ``current_index``.

    ``generation`` is bumped on every wholesale replace so a call that
    started against an older key list can tell its index is stale.

    Example usage::

        pool = CredentialPool.load(store)
        async with pool.lock:
            start = pool.current_index
        ...
        pool.commit(2)
    """

    def __init__(
        self,
        credentials: Iterable[Credential] = (),
        store: LocalStateStore | None = None,
    ) -> None:
        self._credentials: tuple[Credential, ...] = tuple(credentials)
        self._current_index = 0
        self._generation = 0
        self._store = store
        self.lock = asyncio.Lock()

    @classmethod
    def from_values(cls, values: Iterable[str], store: LocalStateStore | None = None) -> CredentialPool:
        return cls([make_credential(v) for v in values], store=store)

    @classmethod
    def load(cls, store: LocalStateStore) -> CredentialPool:
        """Build the pool from the persisted key list."""
        raw = store.get(API_KEYS_KEY, [])
        if isinstance(raw, str):
            values = parse_credentials(raw)
        else:
            values = parse_credentials("\n".join(str(v) for v in raw or []))
        pool = cls.from_values(values, store=store)
        logger.info("Loaded %d credential(s) from local state", len(pool))
        return pool

    def save(self) -> None:
        if self._store is None:
            return
        self._store.set(API_KEYS_KEY, [c.value for c in self._credentials])

    @property
    def credentials(self) -> tuple[Credential, ...]:
        return self._credentials

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_empty(self) -> bool:
        return not self._credentials

    def __len__(self) -> int:
        return len(self._credentials)

    def __getitem__(self, index: int) -> Credential:
        return self._credentials[index]

    def rotate(self, index: int) -> int:
        """Next index after ``index``, wrapping around."""
        if not self._credentials:
            raise IndexError("cannot rotate an empty credential pool")
        return (index + 1) % len(self._credentials)

    def commit(self, index: int) -> None:
        """Pin ``index`` as the last known-good credential."""
        if not 0 <= index < len(self._credentials):
            raise IndexError(f"credential index {index} out of range")
        if index != self._current_index:
            logger.info(
                "Switching active credential to #%d (%s)",
                index, self._credentials[index].masked,
            )
        self._current_index = index

    def replace(self, values: Iterable[str]) -> None:
        """Swap in a new key list wholesale and reset the pointer."""
        self._credentials = tuple(make_credential(v) for v in parse_credentials("\n".join(values)))
        self._current_index = 0
        self._generation += 1
        self.save()
        logger.info("Credential pool replaced (%d key(s))", len(self._credentials))

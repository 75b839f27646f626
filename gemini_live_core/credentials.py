"""Credential providers injected into a LiveSession.

A provider is any callable returning the API key, or None when no key is
available. Coroutine functions are accepted as well.
"""

from __future__ import annotations

import inspect
import os
from collections.abc import Awaitable, Callable

CredentialProvider = Callable[[], "str | None | Awaitable[str | None]"]

DEFAULT_CREDENTIAL_ENV = "GEMINI_API_KEY"


def static_credential(value: str | None) -> CredentialProvider:
    """Provider that always returns the same key."""

    def _provide() -> str | None:
        return value

    return _provide


def env_credential(name: str = DEFAULT_CREDENTIAL_ENV) -> CredentialProvider:
    """Provider that reads the key from an environment variable at connect time."""

    def _provide() -> str | None:
        return os.environ.get(name)

    return _provide


async def resolve_credential(provider: CredentialProvider) -> str | None:
    """Call a provider, awaiting it when it returns an awaitable.

    Blank strings count as missing.
    """
    result = provider()
    if inspect.isawaitable(result):
        result = await result
    if result is None:
        return None
    result = result.strip()
    return result or None

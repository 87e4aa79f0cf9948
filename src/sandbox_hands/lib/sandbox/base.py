"""Sandbox protocol, command results, and the per-session namespace.

A ``Sandbox`` is an isolated execution context owned by exactly one session.
A ``SandboxNamespace`` hands out those contexts by session identifier and
guarantees an identifier is never handed out while it is still in use.
"""

from __future__ import annotations

import abc
import logging
from collections import OrderedDict
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4

__all__ = [
    "ExecResult",
    "Sandbox",
    "SandboxError",
    "SandboxNamespace",
    "SessionIdInUseError",
    "get_sandbox",
    "new_session_id",
]

logger = logging.getLogger(__name__)


class SandboxError(RuntimeError):
    """A sandbox operation (checkout, env setup, exec) failed."""


class SessionIdInUseError(SandboxError):
    """The requested session identifier is live or was recently released."""


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a one-shot command run inside a sandbox."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None

    def output(self) -> str:
        """Return stdout when the command succeeded, stderr otherwise."""
        return self.stdout if self.success else self.stderr


class Sandbox(Protocol):
    """Isolated execution context scoped to one session."""

    session_id: str

    async def checkout(self, url: str, *, target_dir: str) -> None:
        """Clone *url* into *target_dir* relative to the sandbox workspace."""
        ...

    async def set_env_vars(self, env: Mapping[str, str]) -> None:
        """Make *env* visible to every later command of this session."""
        ...

    async def exec(self, command: str) -> ExecResult:
        """Run a shell *command* to completion and return its output."""
        ...

    def exec_stream(self, command: str) -> AsyncIterator[bytes]:
        """Run a shell *command*, yielding its events as SSE-formatted bytes."""
        ...

    async def destroy(self) -> None:
        """Release the sandbox once the session is over."""
        ...


def new_session_id() -> str:
    """Return a short random session identifier."""
    return uuid4().hex[:8]


class SandboxNamespace(abc.ABC):
    """Registry that creates one ``Sandbox`` per session identifier.

    Identifiers of live sessions are never handed out again.  Released
    identifiers are remembered for the most recent ``RECENT_IDS_LIMIT``
    sessions so memory stays bounded in a long-running server.
    """

    RECENT_IDS_LIMIT = 4096

    def __init__(self) -> None:
        self._live: set[str] = set()
        self._recent: OrderedDict[str, None] = OrderedDict()

    def get(self, session_id: str) -> Sandbox:
        """Create the sandbox for *session_id*.

        Raises:
            ValueError: If *session_id* is empty.
            SessionIdInUseError: If *session_id* is live or was recently
                released.
        """
        if not session_id:
            raise ValueError("session_id must be non-empty")
        if session_id in self._live or session_id in self._recent:
            msg = f"Sandbox session {session_id!r} was already issued."
            raise SessionIdInUseError(msg)
        self._live.add(session_id)
        try:
            sandbox = self._create(session_id)
        except Exception:
            self._live.discard(session_id)
            raise
        logger.debug("Issued sandbox session %s", session_id)
        return sandbox

    def release(self, session_id: str) -> None:
        """Mark *session_id* as no longer live."""
        if session_id not in self._live:
            return
        self._live.discard(session_id)
        self._recent[session_id] = None
        while len(self._recent) > self.RECENT_IDS_LIMIT:
            self._recent.popitem(last=False)

    @property
    def live_sessions(self) -> frozenset[str]:
        return frozenset(self._live)

    @abc.abstractmethod
    def _create(self, session_id: str) -> Sandbox:
        """Build the backend-specific sandbox for *session_id*."""

    async def aclose(self) -> None:
        """Release namespace-wide resources."""


def get_sandbox(namespace: SandboxNamespace, session_id: str) -> Sandbox:
    """Acquire the sandbox for *session_id* from *namespace*."""
    return namespace.get(session_id)

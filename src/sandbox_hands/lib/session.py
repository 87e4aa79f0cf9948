"""Per-request session controller: sandbox → agent → outward stream → diff.

A request is handled in two phases:

1. **Open** (``SessionController.open``): synchronous and cheap. Derive the
   checkout name, allocate a fresh session identifier and acquire its
   sandbox.  Failures here propagate so the HTTP layer can reject the
   request before any response body is sent.
2. **Stream** (``Session.stream``): checkout, credential setup, the agent
   run and the final ``git diff``.  Every failure in this phase is written
   into the stream as one ``Error:`` line, and the stream is closed exactly
   once on every path.

Body layout of a successful stream::

    === Claude Code Output ===

    <agent stdout/stderr, verbatim>
    [exit code: N]            (only for a non-zero exit)

    === Git Diff ===

    <git diff output, verbatim>
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing, suppress

from pydantic import BaseModel, field_validator

from sandbox_hands.lib.config import Config
from sandbox_hands.lib.events import (
    CompleteEvent,
    ErrorEvent,
    ExecutionEvent,
    StderrEvent,
    StdoutEvent,
)
from sandbox_hands.lib.git_utils import checkout_name, redact_sensitive
from sandbox_hands.lib.hands import AgentRunner, ClaudeCodeHand, HandFactory
from sandbox_hands.lib.hands.command import render_command
from sandbox_hands.lib.sandbox import (
    Sandbox,
    SandboxNamespace,
    SessionIdInUseError,
    get_sandbox,
    new_session_id,
)
from sandbox_hands.lib.stream import OutputStream

__all__ = [
    "DIFF_HEADER",
    "Session",
    "SessionController",
    "TaskRequest",
    "format_event",
    "output_header",
]

logger = logging.getLogger(__name__)

DIFF_HEADER = "\n\n=== Git Diff ===\n\n"
CREDENTIAL_ENV_VAR = "ANTHROPIC_API_KEY"


class TaskRequest(BaseModel):
    """Request body accepted by the HTTP endpoint."""

    repo: str
    task: str

    @field_validator("repo", "task")
    @classmethod
    def _require_non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be a non-empty string")
        return value


def output_header(agent_name: str) -> str:
    """Return the marker written before the agent's output."""
    return f"=== {agent_name} Output ===\n\n"


def format_event(event: ExecutionEvent) -> str:
    """Render one execution event for the outward stream.

    Output fragments pass through verbatim; a zero exit code renders as
    nothing.
    """
    if isinstance(event, StdoutEvent | StderrEvent):
        return event.data or ""
    if isinstance(event, CompleteEvent):
        if event.exit_code == 0:
            return ""
        return f"\n[exit code: {event.exit_code}]\n"
    if isinstance(event, ErrorEvent):
        return f"\n[agent error: {event.error or 'unknown error'}]\n"
    return ""


def _error_message(exc: BaseException) -> str:
    return redact_sensitive(str(exc)) or type(exc).__name__


class Session:
    """One request's sandbox, agent and outward stream."""

    def __init__(
        self,
        *,
        session_id: str,
        request: TaskRequest,
        sandbox: Sandbox,
        hand: AgentRunner,
        env_vars: dict[str, str],
        namespace: SandboxNamespace | None = None,
    ) -> None:
        self.session_id = session_id
        self.request = request
        self.sandbox = sandbox
        self.hand = hand
        self.env_vars = env_vars
        self.namespace = namespace
        self.checkout_name = checkout_name(request.repo)
        self._release_task: asyncio.Task[None] | None = None

    async def stream(self) -> AsyncIterator[bytes]:
        """Run the session and yield the outward byte stream as it is produced.

        If the consumer stops iterating early (client disconnect), the
        session task is cancelled.  The sandbox is released on every path.
        """
        output = OutputStream()
        producer = asyncio.create_task(self._run(output))
        try:
            async for chunk in output:
                yield chunk
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                with suppress(asyncio.CancelledError):
                    await producer
            await self.aclose()

    async def aclose(self) -> None:
        """Release the sandbox once; later calls wait for the same release.

        The release runs in its own task, so cancelling a caller never
        interrupts a ``destroy`` that is already in flight.
        """
        if self._release_task is None:
            self._release_task = asyncio.ensure_future(self._release())
        await asyncio.shield(self._release_task)

    async def _run(self, output: OutputStream) -> None:
        try:
            async with output.writing():
                try:
                    await self._relay(output)
                except Exception as exc:
                    message = _error_message(exc)
                    logger.warning("Session %s failed: %s", self.session_id, message)
                    output.write(f"\nError: {message}")
        finally:
            await self.aclose()

    async def _relay(self, output: OutputStream) -> None:
        await self.sandbox.checkout(self.request.repo, target_dir=self.checkout_name)
        await self.sandbox.set_env_vars(self.env_vars)
        command = self.hand.build_command(
            self.request.task, workdir=self.checkout_name
        )

        output.write(output_header(self.hand.display_name))
        async with aclosing(self.hand.run(command)) as events:
            async for event in events:
                if isinstance(event, CompleteEvent):
                    logger.info(
                        "Session %s agent exited with %d",
                        self.session_id,
                        event.exit_code,
                    )
                output.write(format_event(event))

        output.write(DIFF_HEADER)
        diff = await self.sandbox.exec(
            render_command(["git", "diff"], cwd=self.checkout_name)
        )
        output.write(diff.output())

    async def _release(self) -> None:
        try:
            await self.sandbox.destroy()
        except Exception:
            logger.exception("Failed to release sandbox session %s", self.session_id)
        finally:
            if self.namespace is not None:
                self.namespace.release(self.session_id)


class SessionController:
    """Creates sessions bound to a sandbox namespace and configuration."""

    MAX_SESSION_ID_ATTEMPTS = 5

    def __init__(
        self,
        namespace: SandboxNamespace,
        *,
        config: Config,
        hand_factory: HandFactory = ClaudeCodeHand,
        session_id_factory: Callable[[], str] = new_session_id,
    ) -> None:
        self.namespace = namespace
        self.config = config
        self._hand_factory = hand_factory
        self._session_id_factory = session_id_factory

    def _session_env(self) -> dict[str, str]:
        if not self.config.anthropic_api_key:
            logger.warning(
                "%s is not configured; the agent will run without it.",
                CREDENTIAL_ENV_VAR,
            )
            return {}
        return {CREDENTIAL_ENV_VAR: self.config.anthropic_api_key}

    def _acquire(self) -> tuple[str, Sandbox]:
        attempts_left = self.MAX_SESSION_ID_ATTEMPTS
        while True:
            session_id = self._session_id_factory()
            try:
                return session_id, get_sandbox(self.namespace, session_id)
            except SessionIdInUseError:
                attempts_left -= 1
                if attempts_left <= 0:
                    raise
                logger.warning("Session id %s is in use; drawing another", session_id)

    def open(self, request: TaskRequest) -> Session:
        """Acquire a sandbox for a new session serving *request*."""
        session_id, sandbox = self._acquire()
        hand = self._hand_factory(sandbox, self.config)
        logger.info(
            "Opened session %s for %s", session_id, redact_sensitive(request.repo)
        )
        return Session(
            session_id=session_id,
            request=request,
            sandbox=sandbox,
            hand=hand,
            env_vars=self._session_env(),
            namespace=self.namespace,
        )

    async def stream(self, request: TaskRequest) -> AsyncIterator[bytes]:
        """Open a session for *request* and yield its outward stream."""
        session = self.open(request)
        async with aclosing(session.stream()) as chunks:
            async for chunk in chunks:
                yield chunk

"""Agent runner protocol shared by the session controller and hand backends."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from sandbox_hands.lib.config import Config
    from sandbox_hands.lib.events import ExecutionEvent
    from sandbox_hands.lib.sandbox import Sandbox

__all__ = ["AgentRunner", "HandFactory"]


class AgentRunner(Protocol):
    """An opaque coding agent executed as one sandbox command."""

    display_name: str

    def build_command(self, task: str, *, workdir: str) -> str:
        """Render the shell command that runs the agent on *task* in *workdir*."""
        ...

    def run(self, command: str) -> AsyncIterator[ExecutionEvent]:
        """Execute *command* and yield its events in arrival order."""
        ...


HandFactory = Callable[["Sandbox", "Config"], AgentRunner]

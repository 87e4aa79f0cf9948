"""Claude Code CLI hand running inside a sandbox."""

from __future__ import annotations

import shlex
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import TYPE_CHECKING

from sandbox_hands.lib.default_prompts import EXTRA_SYSTEM_PROMPT
from sandbox_hands.lib.events import ExecutionEvent, parse_sse_stream
from sandbox_hands.lib.hands.command import render_command

if TYPE_CHECKING:
    from sandbox_hands.lib.config import Config
    from sandbox_hands.lib.sandbox import Sandbox


class ClaudeCodeHand:
    """Hand backed by the Claude Code CLI executed with ``exec_stream``."""

    _COMMAND_ENV_VAR = "SANDBOX_HANDS_CLAUDE_CLI_CMD"
    display_name = "Claude Code"

    def __init__(self, sandbox: Sandbox, config: Config) -> None:
        self.sandbox = sandbox
        self.config = config

    def _base_command(self) -> list[str]:
        tokens = shlex.split(self.config.agent_cli_cmd)
        if not tokens:
            msg = f"{self._COMMAND_ENV_VAR} resolved to an empty command."
            raise RuntimeError(msg)
        return tokens

    def _resolve_cli_model(self) -> str:
        model = str(self.config.model).strip()
        if not model or model == "default":
            return ""
        if "/" in model:
            _, _, provider_model = model.partition("/")
            if provider_model:
                model = provider_model
        if model.lower().startswith("gpt-"):
            return ""
        return model

    def build_argv(self, task: str) -> list[str]:
        argv = [
            *self._base_command(),
            "--append-system-prompt",
            EXTRA_SYSTEM_PROMPT,
            "-p",
            task,
            "--permission-mode",
            self.config.permission_mode,
        ]
        model = self._resolve_cli_model()
        if model:
            argv.extend(["--model", model])
        return argv

    def build_command(self, task: str, *, workdir: str) -> str:
        return render_command(self.build_argv(task), cwd=workdir)

    async def run(self, command: str) -> AsyncIterator[ExecutionEvent]:
        async with aclosing(self.sandbox.exec_stream(command)) as raw:
            async for event in parse_sse_stream(raw):
                yield event

"""Shared fakes for session, server and CLI tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import Any

import pytest

from sandbox_hands.lib.events import encode_sse_event
from sandbox_hands.lib.sandbox import ExecResult, SandboxNamespace


def sse(event_type: str, **fields: Any) -> bytes:
    return encode_sse_event({"type": event_type, **fields})


class FakeSandbox:
    """In-memory sandbox that records calls and replays scripted output."""

    def __init__(
        self,
        session_id: str,
        *,
        chunks: list[bytes] | None = None,
        stream_error: BaseException | None = None,
        checkout_error: BaseException | None = None,
        env_error: BaseException | None = None,
        diff: ExecResult | None = None,
        destroy_delay: float = 0.0,
    ) -> None:
        self.session_id = session_id
        self.chunks = chunks if chunks is not None else [sse("complete", exitCode=0)]
        self.stream_error = stream_error
        self.checkout_error = checkout_error
        self.env_error = env_error
        self.diff = diff if diff is not None else ExecResult(success=True, stdout="")
        self.calls: list[tuple[str, Any]] = []
        self.env: dict[str, str] = {}
        self.destroy_delay = destroy_delay
        self.destroy_calls = 0
        self.destroyed = False

    async def checkout(self, url: str, *, target_dir: str) -> None:
        self.calls.append(("checkout", (url, target_dir)))
        if self.checkout_error is not None:
            raise self.checkout_error

    async def set_env_vars(self, env: Mapping[str, str]) -> None:
        self.calls.append(("set_env_vars", dict(env)))
        if self.env_error is not None:
            raise self.env_error
        self.env.update(env)

    async def exec(self, command: str) -> ExecResult:
        self.calls.append(("exec", command))
        return self.diff

    async def exec_stream(self, command: str) -> AsyncIterator[bytes]:
        self.calls.append(("exec_stream", command))
        for chunk in self.chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    async def destroy(self) -> None:
        self.destroy_calls += 1
        if self.destroy_delay:
            await asyncio.sleep(self.destroy_delay)
        self.destroyed = True


class FakeNamespace(SandboxNamespace):
    """Namespace handing out ``FakeSandbox`` instances built from a template."""

    def __init__(self, **sandbox_kwargs: Any) -> None:
        super().__init__()
        self.sandbox_kwargs = sandbox_kwargs
        self.sandboxes: dict[str, FakeSandbox] = {}
        self.closed = False

    def _create(self, session_id: str) -> FakeSandbox:
        sandbox = FakeSandbox(session_id, **self.sandbox_kwargs)
        self.sandboxes[session_id] = sandbox
        return sandbox

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def fake_namespace() -> FakeNamespace:
    return FakeNamespace()

"""Local sandbox backend: one temporary directory per session.

Commands run through the host shell inside the session directory.  This is
the backend used for development and for the CLI; it isolates sessions from
each other on disk but does not contain the agent the way a container does.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import shutil
from collections.abc import AsyncIterator, Mapping
from contextlib import suppress
from pathlib import Path
from tempfile import mkdtemp

from sandbox_hands.lib.events import encode_sse_event
from sandbox_hands.lib.git_utils import (
    git_noninteractive_env,
    redact_sensitive,
    resolve_clone_url,
)
from sandbox_hands.lib.sandbox.base import ExecResult, SandboxError, SandboxNamespace

__all__ = ["LocalSandbox", "LocalSandboxNamespace"]

logger = logging.getLogger(__name__)

_READ_CHUNK_BYTES = 1024
_TERMINATE_GRACE_SECONDS = 5


class LocalSandbox:
    """Sandbox rooted at a private directory on the local filesystem."""

    def __init__(self, session_id: str, root: Path) -> None:
        self.session_id = session_id
        self.root = root
        self._env: dict[str, str] = {}

    def _build_env(self) -> dict[str, str]:
        env = git_noninteractive_env()
        env.update(self._env)
        return env

    def _resolve_target(self, target_dir: str) -> Path:
        root = self.root.resolve()
        dest = (root / target_dir).resolve()
        if dest == root or not dest.is_relative_to(root):
            msg = f"Checkout target {target_dir!r} escapes the sandbox workspace."
            raise SandboxError(msg)
        return dest

    async def checkout(self, url: str, *, target_dir: str) -> None:
        dest = self._resolve_target(target_dir)
        clone_url = resolve_clone_url(url)
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                "clone",
                clone_url,
                str(dest),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=git_noninteractive_env(),
            )
        except FileNotFoundError as exc:
            raise SandboxError("git is not available on PATH.") from exc

        _, stderr = await process.communicate()
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            msg = (
                f"failed to clone {redact_sensitive(clone_url)}: "
                f"{redact_sensitive(detail) or 'unknown git clone error'}"
            )
            raise SandboxError(msg)
        logger.info("Cloned %s → %s", redact_sensitive(clone_url), dest)

    async def set_env_vars(self, env: Mapping[str, str]) -> None:
        self._env.update(env)

    async def _spawn(self, command: str) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_shell(
            command,
            cwd=str(self.root),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self._build_env(),
        )

    async def exec(self, command: str) -> ExecResult:
        try:
            process = await self._spawn(command)
        except OSError as exc:
            msg = f"failed to start command in sandbox {self.session_id}: {exc}"
            raise SandboxError(msg) from exc
        stdout, stderr = await process.communicate()
        return ExecResult(
            success=process.returncode == 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode,
        )

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=_TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            process.kill()
            await process.wait()

    async def exec_stream(self, command: str) -> AsyncIterator[bytes]:
        yield encode_sse_event({"type": "start", "command": command})
        try:
            process = await self._spawn(command)
        except OSError as exc:
            yield encode_sse_event({"type": "error", "error": str(exc)})
            return

        queue: asyncio.Queue[tuple[str, bytes] | None] = asyncio.Queue()

        async def _pump(name: str, reader: asyncio.StreamReader | None) -> None:
            try:
                while reader is not None:
                    data = await reader.read(_READ_CHUNK_BYTES)
                    if not data:
                        break
                    await queue.put((name, data))
            finally:
                await queue.put(None)

        pumps = [
            asyncio.create_task(_pump("stdout", process.stdout)),
            asyncio.create_task(_pump("stderr", process.stderr)),
        ]
        decoders = {
            name: codecs.getincrementaldecoder("utf-8")(errors="replace")
            for name in ("stdout", "stderr")
        }
        try:
            open_pipes = len(pumps)
            while open_pipes:
                item = await queue.get()
                if item is None:
                    open_pipes -= 1
                    continue
                name, data = item
                text = decoders[name].decode(data)
                if text:
                    yield encode_sse_event({"type": name, "data": text})
            for name, decoder in decoders.items():
                tail = decoder.decode(b"", final=True)
                if tail:
                    yield encode_sse_event({"type": name, "data": tail})
            return_code = await process.wait()
            yield encode_sse_event({"type": "complete", "exitCode": return_code})
        finally:
            for pump in pumps:
                if not pump.done():
                    pump.cancel()
                    with suppress(asyncio.CancelledError):
                        await pump
            await self._terminate(process)

    async def destroy(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)


class LocalSandboxNamespace(SandboxNamespace):
    """Creates a fresh temporary directory for every session."""

    def __init__(self, root: Path | None = None) -> None:
        super().__init__()
        self.root = root

    def _create(self, session_id: str) -> LocalSandbox:
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
        session_dir = Path(
            mkdtemp(prefix=f"sandbox_hands_{session_id}_", dir=self.root)
        )
        return LocalSandbox(session_id, session_dir)

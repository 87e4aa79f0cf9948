"""Remote sandbox backend speaking the sandbox control HTTP API.

Every request carries the session identifier so the control plane can route
it to the container owned by that session:

- ``POST /api/git/checkout``   ``{sessionId, repoUrl, targetDir}``
- ``POST /api/env``            ``{sessionId, envVars}``
- ``POST /api/execute``        ``{sessionId, command}`` → ``{success, stdout, stderr, exitCode}``
- ``POST /api/execute/stream`` ``{sessionId, command}`` → ``text/event-stream``
- ``DELETE /api/session/{sessionId}``
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx

from sandbox_hands.lib.git_utils import redact_sensitive
from sandbox_hands.lib.sandbox.base import ExecResult, SandboxError, SandboxNamespace

__all__ = ["HttpSandbox", "HttpSandboxNamespace"]

logger = logging.getLogger(__name__)


class HttpSandbox:
    """Sandbox whose operations are executed by a remote control plane."""

    HTTP_CONNECT_TIMEOUT = 10.0

    def __init__(self, session_id: str, client: httpx.AsyncClient) -> None:
        self.session_id = session_id
        self._client = client

    def _payload(self, **fields: Any) -> dict[str, Any]:
        return {"sessionId": self.session_id, **fields}

    @staticmethod
    def _raise_for_status(path: str, response: httpx.Response) -> None:
        if not response.is_error:
            return
        body = redact_sensitive(response.text.strip())
        msg = f"sandbox request {path} failed: {response.status_code}"
        if body:
            msg = f"{msg} - {body}"
        raise SandboxError(msg)

    async def _post(self, path: str, **fields: Any) -> httpx.Response:
        try:
            response = await self._client.post(path, json=self._payload(**fields))
        except httpx.HTTPError as exc:
            msg = f"sandbox request {path} failed: {redact_sensitive(str(exc))}"
            raise SandboxError(msg) from exc
        self._raise_for_status(path, response)
        return response

    async def checkout(self, url: str, *, target_dir: str) -> None:
        await self._post("/api/git/checkout", repoUrl=url, targetDir=target_dir)
        logger.info(
            "Checked out %s → %s (session %s)",
            redact_sensitive(url),
            target_dir,
            self.session_id,
        )

    async def set_env_vars(self, env: Mapping[str, str]) -> None:
        await self._post("/api/env", envVars=dict(env))

    async def exec(self, command: str) -> ExecResult:
        response = await self._post("/api/execute", command=command)
        try:
            data = response.json()
        except ValueError as exc:
            msg = "sandbox request /api/execute returned a non-JSON body"
            raise SandboxError(msg) from exc
        if not isinstance(data, dict):
            msg = "sandbox request /api/execute returned an unexpected payload"
            raise SandboxError(msg)
        exit_code = data.get("exitCode")
        return ExecResult(
            success=bool(data.get("success")),
            stdout=str(data.get("stdout") or ""),
            stderr=str(data.get("stderr") or ""),
            exit_code=exit_code if isinstance(exit_code, int) else None,
        )

    async def exec_stream(self, command: str) -> AsyncIterator[bytes]:
        path = "/api/execute/stream"
        try:
            async with self._client.stream(
                "POST",
                path,
                json=self._payload(command=command),
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(None, connect=self.HTTP_CONNECT_TIMEOUT),
            ) as response:
                if response.is_error:
                    await response.aread()
                    self._raise_for_status(path, response)
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            msg = f"sandbox stream {path} failed: {redact_sensitive(str(exc))}"
            raise SandboxError(msg) from exc

    async def destroy(self) -> None:
        path = f"/api/session/{self.session_id}"
        try:
            response = await self._client.delete(path)
        except httpx.HTTPError as exc:
            msg = f"sandbox request {path} failed: {redact_sensitive(str(exc))}"
            raise SandboxError(msg) from exc
        if response.status_code == 404:
            return
        self._raise_for_status(path, response)


class HttpSandboxNamespace(SandboxNamespace):
    """Creates ``HttpSandbox`` handles that share one HTTP connection pool."""

    REQUEST_TIMEOUT = 300.0

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self.base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(
                self.REQUEST_TIMEOUT, connect=HttpSandbox.HTTP_CONNECT_TIMEOUT
            ),
        )

    def _create(self, session_id: str) -> HttpSandbox:
        return HttpSandbox(session_id, self._client)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

"""Isolated execution backends.

``SandboxNamespace`` implementations hand out one ``Sandbox`` per session:
- ``LocalSandboxNamespace`` runs commands in a private temporary directory.
- ``HttpSandboxNamespace`` drives a remote sandbox control API.

``build_namespace`` picks the backend named by a ``Config``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sandbox_hands.lib.sandbox.base import (
    ExecResult,
    Sandbox,
    SandboxError,
    SandboxNamespace,
    SessionIdInUseError,
    get_sandbox,
    new_session_id,
)
from sandbox_hands.lib.sandbox.http import HttpSandbox, HttpSandboxNamespace
from sandbox_hands.lib.sandbox.local import LocalSandbox, LocalSandboxNamespace

if TYPE_CHECKING:
    from sandbox_hands.lib.config import Config

__all__ = [
    "ExecResult",
    "HttpSandbox",
    "HttpSandboxNamespace",
    "LocalSandbox",
    "LocalSandboxNamespace",
    "Sandbox",
    "SandboxError",
    "SandboxNamespace",
    "SessionIdInUseError",
    "build_namespace",
    "get_sandbox",
    "new_session_id",
]


def build_namespace(config: Config) -> SandboxNamespace:
    """Create the sandbox namespace for ``config.sandbox_backend``."""
    if config.sandbox_backend == "http":
        return HttpSandboxNamespace(config.sandbox_url)
    return LocalSandboxNamespace(config.sandbox_root)

"""Configuration loading: CLI flags → env vars → .env file."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

_MODEL_PATTERN = re.compile(r"^[a-zA-Z0-9._:/-]+$")
_SANDBOX_BACKENDS = ("local", "http")

try:
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover - optional dependency safety
    load_dotenv = None  # type: ignore[assignment]

ConfigValue = str | bool | None


def _validate_backend(backend: str, sandbox_url: str) -> None:
    """Reject unknown sandbox backends and an ``http`` backend without a URL."""
    if backend not in _SANDBOX_BACKENDS:
        msg = (
            f"Invalid sandbox backend '{backend}': "
            f"expected one of {', '.join(_SANDBOX_BACKENDS)}."
        )
        raise ValueError(msg)
    if backend == "http" and not sandbox_url:
        msg = (
            "The http sandbox backend needs a control API URL. "
            "Set SANDBOX_HANDS_SANDBOX_URL or pass --sandbox-url."
        )
        raise ValueError(msg)


def _validate_model(model: str) -> None:
    """Warn if model string doesn't match expected patterns."""
    if not model or model == "default":
        return
    if not _MODEL_PATTERN.match(model):
        logger.warning(
            "Model '%s' contains unexpected characters; "
            "expected bare name (e.g. 'claude-sonnet-4-5') or "
            "'provider/model' (e.g. 'anthropic/claude-sonnet-4-5')",
            model,
        )


def _load_env_files() -> None:
    """Load the dotenv file from cwd (if available)."""
    if load_dotenv is None:
        return

    load_dotenv(Path.cwd() / ".env", override=False)


def _is_truthy(raw: str | None) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Config:
    """Immutable application configuration."""

    anthropic_api_key: str = field(default="", repr=False)
    sandbox_backend: str = "local"
    sandbox_url: str = ""
    sandbox_root: Path | None = None
    agent_cli_cmd: str = "claude"
    model: str = "default"
    permission_mode: str = "acceptEdits"
    verbose: bool = False

    def __post_init__(self) -> None:
        """Validate config fields on creation.

        Raises ``ValueError`` for an unknown ``sandbox_backend`` or an
        ``http`` backend without ``sandbox_url``.  Logs a warning when
        ``model`` contains unexpected characters.
        """
        _validate_backend(self.sandbox_backend, self.sandbox_url)
        _validate_model(self.model)

    @classmethod
    def from_env(cls, overrides: dict[str, ConfigValue] | None = None) -> Config:
        """Build config from environment variables, then apply overrides.

        Priority: overrides (CLI flags) > env vars > defaults.
        """
        _load_env_files()

        env_values: dict[str, ConfigValue] = {
            "anthropic_api_key": os.environ.get("ANTHROPIC_API_KEY"),
            "sandbox_backend": os.environ.get("SANDBOX_HANDS_SANDBOX_BACKEND"),
            "sandbox_url": os.environ.get("SANDBOX_HANDS_SANDBOX_URL"),
            "sandbox_root": os.environ.get("SANDBOX_HANDS_SANDBOX_ROOT"),
            "agent_cli_cmd": os.environ.get("SANDBOX_HANDS_CLAUDE_CLI_CMD"),
            "model": os.environ.get("SANDBOX_HANDS_MODEL"),
            "permission_mode": os.environ.get("SANDBOX_HANDS_PERMISSION_MODE"),
            "verbose": _is_truthy(os.environ.get("SANDBOX_HANDS_VERBOSE")),
        }

        merged = {k: v for k, v in env_values.items() if v}
        if overrides:
            merged.update({k: v for k, v in overrides.items() if v is not None})

        raw_root = str(merged.get("sandbox_root") or "").strip()
        return cls(
            anthropic_api_key=str(
                merged.get("anthropic_api_key", cls.anthropic_api_key)
            ).strip(),
            sandbox_backend=str(
                merged.get("sandbox_backend", cls.sandbox_backend)
            ).strip().lower(),
            sandbox_url=str(merged.get("sandbox_url", cls.sandbox_url)).strip(),
            sandbox_root=Path(raw_root).expanduser() if raw_root else None,
            agent_cli_cmd=str(merged.get("agent_cli_cmd", cls.agent_cli_cmd)),
            model=str(merged.get("model", cls.model)),
            permission_mode=str(merged.get("permission_mode", cls.permission_mode)),
            verbose=bool(merged.get("verbose", cls.verbose)),
        )

"""CLI entry point: parse args, load config, stream one sandboxed agent run."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sandbox_hands.lib.config import Config
from sandbox_hands.lib.sandbox import SandboxError, build_namespace
from sandbox_hands.lib.session import SessionController, TaskRequest


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for CLI mode."""
    parser = argparse.ArgumentParser(
        prog="sandbox-hands",
        description=(
            "Run a coding agent against a sandboxed checkout and print its "
            "output followed by the resulting git diff."
        ),
    )
    parser.add_argument(
        "repo",
        help="Repository clone URL (or GitHub owner/repo) to check out.",
    )
    parser.add_argument(
        "--task",
        required=True,
        help="Natural-language task for the agent.",
    )
    parser.add_argument(
        "--backend",
        choices=("local", "http"),
        default=None,
        help="Sandbox backend (overrides SANDBOX_HANDS_SANDBOX_BACKEND).",
    )
    parser.add_argument(
        "--sandbox-url",
        default=None,
        help="Sandbox control API base URL for --backend http.",
    )
    parser.add_argument(
        "--sandbox-root",
        default=None,
        help="Directory local sandbox sessions are created under.",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Model passed to the agent CLI (overrides env/config).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Enable verbose logging.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = Config.from_env(
            overrides={
                "sandbox_backend": args.backend,
                "sandbox_url": args.sandbox_url,
                "sandbox_root": args.sandbox_root,
                "model": args.model,
                "verbose": args.verbose,
            }
        )
        request = TaskRequest(repo=args.repo, task=args.task)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(_stream_session(config, request))
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
    except SandboxError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


async def _stream_session(config: Config, request: TaskRequest) -> None:
    namespace = build_namespace(config)
    try:
        controller = SessionController(namespace, config=config)
        async for chunk in controller.stream(request):
            print(chunk.decode("utf-8"), end="", flush=True)
        print()
    finally:
        await namespace.aclose()


if __name__ == "__main__":
    main()

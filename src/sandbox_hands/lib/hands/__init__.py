"""Agent hands: command construction and runners for sandboxed coding agents."""

from sandbox_hands.lib.hands.base import AgentRunner, HandFactory
from sandbox_hands.lib.hands.claude import ClaudeCodeHand
from sandbox_hands.lib.hands.command import (
    quote_argument,
    render_command,
    unquote_argument,
)

__all__ = [
    "AgentRunner",
    "ClaudeCodeHand",
    "HandFactory",
    "quote_argument",
    "render_command",
    "unquote_argument",
]

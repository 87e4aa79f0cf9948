"""Typed execution events and the server-sent-event decoder.

Sandboxes report streaming command execution as a ``text/event-stream``
body where every event carries one JSON object::

    data: {"type": "stdout", "data": "hello\\n"}

    data: {"type": "complete", "exitCode": 0}

``parse_sse_stream`` turns such a byte stream into ``ExecutionEvent``
values in arrival order.  ``encode_sse_event`` produces the same wire format
for backends that generate events locally.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

__all__ = [
    "CompleteEvent",
    "ErrorEvent",
    "ExecutionEvent",
    "StderrEvent",
    "StdoutEvent",
    "encode_sse_event",
    "parse_sse_stream",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StdoutEvent:
    """A fragment of the command's standard output."""

    data: str | None = None


@dataclass(frozen=True)
class StderrEvent:
    """A fragment of the command's standard error."""

    data: str | None = None


@dataclass(frozen=True)
class CompleteEvent:
    """The command finished with ``exit_code``."""

    exit_code: int = 0


@dataclass(frozen=True)
class ErrorEvent:
    """The sandbox reported a failure, or an event could not be decoded."""

    error: str | None = None


ExecutionEvent = StdoutEvent | StderrEvent | CompleteEvent | ErrorEvent


def encode_sse_event(payload: dict[str, Any]) -> bytes:
    """Serialise *payload* as a single ``data:`` event terminated by a blank line."""
    body = json.dumps(payload, separators=(",", ":"))
    return f"data: {body}\n\n".encode()


def _optional_text(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _decode_payload(raw: str) -> ExecutionEvent | None:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        return ErrorEvent(f"malformed event payload: {exc.msg}")
    if not isinstance(payload, dict):
        return ErrorEvent("malformed event payload: expected a JSON object")

    event_type = payload.get("type")
    if event_type == "stdout":
        return StdoutEvent(_optional_text(payload.get("data")))
    if event_type == "stderr":
        return StderrEvent(_optional_text(payload.get("data")))
    if event_type == "complete":
        exit_code = payload.get("exitCode", 0)
        if isinstance(exit_code, bool) or not isinstance(exit_code, int):
            return ErrorEvent(f"malformed complete event: exitCode={exit_code!r}")
        return CompleteEvent(exit_code)
    if event_type == "error":
        message = payload.get("error")
        if message is None:
            message = payload.get("data")
        return ErrorEvent(_optional_text(message))

    logger.debug("Skipping sandbox event of type %r", event_type)
    return None


def _parse_block(block: str) -> ExecutionEvent | None:
    data_lines: list[str] = []
    for line in block.split("\n"):
        if not line.startswith("data:"):
            # comments, event:/id:/retry: fields
            continue
        value = line[5:]
        if value.startswith(" "):
            value = value[1:]
        data_lines.append(value)
    if not data_lines:
        return None
    return _decode_payload("\n".join(data_lines))


def _normalise_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


async def parse_sse_stream(raw: AsyncIterable[bytes]) -> AsyncIterator[ExecutionEvent]:
    """Decode a server-sent-event byte stream into ``ExecutionEvent`` values.

    Events are yielded one at a time as soon as their terminating blank line
    arrives, so output is relayed with no buffering beyond a single event.
    Lines may end in ``\\n``, ``\\r\\n`` or a bare ``\\r``.  Payloads that
    cannot be decoded become ``ErrorEvent`` values instead of raising;
    exceptions raised by *raw* itself propagate to the caller.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    after_cr = False
    async for chunk in raw:
        text = decoder.decode(chunk)
        if after_cr and text.startswith("\n"):
            # second half of a \r\n split across chunks
            text = text[1:]
            after_cr = False
        if text:
            after_cr = text.endswith("\r")
        buffer += _normalise_newlines(text)
        while "\n\n" in buffer:
            block, buffer = buffer.split("\n\n", 1)
            event = _parse_block(block)
            if event is not None:
                yield event

    buffer += _normalise_newlines(decoder.decode(b"", final=True))
    for block in buffer.split("\n\n"):
        event = _parse_block(block)
        if event is not None:
            yield event

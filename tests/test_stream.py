"""Tests for sandbox_hands.lib.stream."""

from __future__ import annotations

import asyncio

import pytest

from sandbox_hands.lib.stream import OutputStream, StreamClosedError


async def _drain(stream: OutputStream) -> list[bytes]:
    return [chunk async for chunk in stream]


class TestOutputStream:
    def test_chunks_arrive_in_write_order(self) -> None:
        async def _run() -> list[bytes]:
            stream = OutputStream()
            stream.write("a")
            stream.write("")
            stream.write("ü")
            stream.close()
            return await _drain(stream)

        assert asyncio.run(_run()) == [b"a", "ü".encode()]

    def test_write_after_close_raises(self) -> None:
        async def _run() -> None:
            stream = OutputStream()
            stream.close()
            stream.write("late")

        with pytest.raises(StreamClosedError):
            asyncio.run(_run())

    def test_close_twice_raises(self) -> None:
        async def _run() -> None:
            stream = OutputStream()
            stream.close()
            stream.close()

        with pytest.raises(StreamClosedError):
            asyncio.run(_run())

    def test_writing_closes_on_exception(self) -> None:
        async def _run() -> OutputStream:
            stream = OutputStream()
            with pytest.raises(KeyError):
                async with stream.writing():
                    stream.write("partial")
                    raise KeyError("boom")
            return stream

        async def _check() -> list[bytes]:
            stream = await _run()
            assert stream.closed is True
            return await _drain(stream)

        assert asyncio.run(_check()) == [b"partial"]

    def test_consumer_receives_chunks_while_producer_runs(self) -> None:
        async def _run() -> list[str]:
            stream = OutputStream()
            seen: list[str] = []

            async def _produce() -> None:
                async with stream.writing():
                    for part in ("one", "two", "three"):
                        stream.write(part)
                        seen.append(f"wrote {part}")
                        await asyncio.sleep(0)

            producer = asyncio.create_task(_produce())
            async for chunk in stream:
                seen.append(f"read {chunk.decode()}")
            await producer
            return seen

        seen = asyncio.run(_run())
        assert [s for s in seen if s.startswith("read")] == [
            "read one",
            "read two",
            "read three",
        ]
        assert seen.index("read one") < seen.index("wrote three")

"""Tests for tool-name restoration in upstream streams."""

from collections.abc import AsyncIterator, Iterable

import pytest

from claude_multi_auth.services.streaming import (
    MAX_CARRY_BYTES,
    ToolNameRewriter,
    restore_tool_names,
)


NAMES = {"mcp_bash": "bash", "mcp_bash_exec": "bash_exec"}


async def _stream(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


async def _collect(chunks: list[bytes], names: dict[str, str] = NAMES) -> list[bytes]:
    return [chunk async for chunk in restore_tool_names(_stream(chunks), names)]


@pytest.mark.unit
class TestToolNameRewriter:
    def test_rewrites_within_chunk(self) -> None:
        rewriter = ToolNameRewriter(NAMES)

        out = rewriter.feed(b'data: {"type":"tool_use","name":"mcp_bash","input":{}}\n\n')

        assert out == b'data: {"type":"tool_use","name":"bash","input":{}}\n\n'
        assert rewriter.flush() == b""

    def test_longest_name_wins(self) -> None:
        rewriter = ToolNameRewriter(NAMES)

        assert rewriter.feed(b'{"name": "mcp_bash_exec"}') == b'{"name": "bash_exec"}'

    def test_whitespace_around_colon(self) -> None:
        rewriter = ToolNameRewriter(NAMES)

        assert rewriter.feed(b'{"name" :\n "mcp_bash"}') == b'{"name" :\n "bash"}'

    def test_unknown_names_untouched(self) -> None:
        rewriter = ToolNameRewriter(NAMES)
        chunk = b'{"name":"mcp_other","text":"mcp_bash"}'

        assert rewriter.feed(chunk) + rewriter.flush() == chunk

    def test_partial_match_is_held_back(self) -> None:
        rewriter = ToolNameRewriter(NAMES)

        first = rewriter.feed(b'{"type":"tool_use","name":"mcp_ba')
        second = rewriter.feed(b'sh","input":{}}')

        assert first == b'{"type":"tool_use",'
        assert first + second == b'{"type":"tool_use","name":"bash","input":{}}'

    def test_carry_never_exceeds_window(self) -> None:
        rewriter = ToolNameRewriter(NAMES)
        rewriter.feed(b"x" * 1000 + b'"')

        assert len(rewriter.flush()) <= MAX_CARRY_BYTES


@pytest.mark.unit
@pytest.mark.asyncio
class TestRestoreToolNames:
    async def test_empty_mapping_passes_chunks_through(self) -> None:
        chunks = [b'{"name":"mcp_bash"}', b"", b"tail"]

        assert await _collect(chunks, {}) == chunks

    async def test_one_output_per_input_chunk(self) -> None:
        chunks = [b"event: a\n", b"data: {}\n\n", b"event: b\n"]

        out = await _collect(chunks)

        assert out == chunks

    @pytest.mark.parametrize("split", range(1, 30))
    async def test_split_anywhere_is_rewritten(self, split: int) -> None:
        payload = b'data: {"name":"mcp_bash","id":"toolu_1"}\n\n'

        out = await _collect([payload[:split], payload[split:]])

        assert b"".join(out) == b'data: {"name":"bash","id":"toolu_1"}\n\n'
        assert 2 <= len(out) <= 3

    async def test_held_tail_is_flushed_at_end(self) -> None:
        out = await _collect([b'ok {"name":"mcp_b'])

        assert out == [b"ok {", b'"name":"mcp_b']

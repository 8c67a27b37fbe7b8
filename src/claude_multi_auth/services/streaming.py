"""Inbound stream rewriting.

Tool names were prefixed on the way out; upstream echoes them back inside
``"name": "<prefixed>"`` pairs. The rewriter turns those back into the names
the caller sent while leaving every other byte untouched.

Chunk boundaries: a trailing fragment that could still grow into a match
(at most ``MAX_CARRY_BYTES``) is held back and prepended to the next chunk,
so a name split across two network reads is still rewritten. Each input
chunk yields exactly one output chunk (empty when the whole chunk was held
back), and whatever is still held when the stream ends is flushed as one
final chunk.
"""

import re
from collections.abc import AsyncIterator, Mapping

from structlog import get_logger


logger = get_logger(__name__)

MAX_CARRY_BYTES = 256

_KEY = b'"name"'
_WHITESPACE = b" \t\n\r\f\v"


class ToolNameRewriter:
    """Incremental byte rewriter for prefixed tool names."""

    def __init__(self, tool_names: Mapping[str, str]) -> None:
        """
        Args:
            tool_names: Prefixed name to original name
        """
        self._names = {
            prefixed.encode("utf-8"): original.encode("utf-8")
            for prefixed, original in tool_names.items()
        }
        # Longest first so a name never matches as the prefix of a longer one
        alternatives = b"|".join(
            re.escape(name) for name in sorted(self._names, key=len, reverse=True)
        )
        self._pattern = re.compile(rb'("name"\s*:\s*")(' + alternatives + rb')(")')
        self._carry = b""

    def _replace(self, match: re.Match[bytes]) -> bytes:
        return match.group(1) + self._names[match.group(2)] + match.group(3)

    def _is_viable_prefix(self, fragment: bytes) -> bool:
        """Check whether ``fragment`` could be the start of a match."""
        if len(fragment) <= len(_KEY):
            return _KEY.startswith(fragment)
        if not fragment.startswith(_KEY):
            return False

        rest = fragment[len(_KEY) :].lstrip(_WHITESPACE)
        if not rest:
            return True
        if not rest.startswith(b":"):
            return False

        rest = rest[1:].lstrip(_WHITESPACE)
        if not rest:
            return True
        if not rest.startswith(b'"'):
            return False

        partial_name = rest[1:]
        return any(name.startswith(partial_name) for name in self._names)

    def _hold_start(self, data: bytes, search_from: int) -> int:
        """Offset from which ``data`` must be held back, or len(data)."""
        window_start = max(search_from, len(data) - MAX_CARRY_BYTES)
        position = data.find(b'"', window_start)
        while position != -1:
            if self._is_viable_prefix(data[position:]):
                return position
            position = data.find(b'"', position + 1)
        return len(data)

    def feed(self, chunk: bytes) -> bytes:
        """Rewrite one chunk. Returns the bytes that are safe to emit now."""
        if not self._names:
            return chunk
        data = self._carry + chunk

        last_end = 0
        for match in self._pattern.finditer(data):
            last_end = match.end()

        hold = self._hold_start(data, last_end)
        self._carry = data[hold:]
        return self._pattern.sub(self._replace, data[:hold])

    def flush(self) -> bytes:
        """Return held-back bytes at end of stream."""
        tail, self._carry = self._carry, b""
        return tail


async def restore_tool_names(
    stream: AsyncIterator[bytes], tool_names: Mapping[str, str]
) -> AsyncIterator[bytes]:
    """Lazily rewrite prefixed tool names in an upstream byte stream.

    Args:
        stream: Upstream body chunks
        tool_names: Prefixed name to original name

    Yields:
        One rewritten chunk per upstream chunk, plus a final chunk when bytes
        were still held back at the end of the stream
    """
    if not tool_names:
        async for chunk in stream:
            yield chunk
        return

    rewriter = ToolNameRewriter(tool_names)
    async for chunk in stream:
        yield rewriter.feed(chunk)

    tail = rewriter.flush()
    if tail:
        yield tail

"""Token-bounded, line-aligned chunker with token overlap.

Content is split on newlines and every line is tokenised once. Chunks are
windows of whole lines whose token span stays within ``max_tokens``; the next
window restarts far enough back to repeat about ``overlap_tokens`` tokens of
the previous one.

Tokenisation uses tiktoken's ``cl100k_base`` encoding. When the tokenizer is
unavailable the whole document is returned as a single chunk so indexing can
still proceed.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024
DEFAULT_OVERLAP_TOKENS = 256
MIN_MAX_TOKENS = 256
MAX_MAX_TOKENS = 2048

_ENCODING_NAME = "cl100k_base"

Encoder = Callable[[str], Sequence[int]]


@dataclass
class TokenChunk:
    """One window of whole lines. Line numbers are 1-based and inclusive."""

    text: str
    line_start: int
    line_end: int
    token_start: int
    token_end: int

    @property
    def token_count(self) -> int:
        return self.token_end - self.token_start

    @property
    def line_pos_start(self) -> int:
        return 0

    @property
    def line_pos_end(self) -> int:
        return len(self.text.rsplit("\n", 1)[-1])


def clamp_max_tokens(max_tokens: int) -> int:
    """Clamp *max_tokens* to [256, 2048]."""
    return min(max(int(max_tokens), MIN_MAX_TOKENS), MAX_MAX_TOKENS)


def clamp_overlap_tokens(overlap_tokens: int, max_tokens: int) -> int:
    """Clamp *overlap_tokens* to [0, max_tokens - 1] (max_tokens already clamped)."""
    return max(0, min(int(overlap_tokens), max_tokens - 1))


@functools.lru_cache(maxsize=1)
def _get_encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding(_ENCODING_NAME)


def default_encoder(text: str) -> list[int]:
    """Encode *text* with cl100k_base. Special-token text is encoded as plain text."""
    return _get_encoding().encode(text, disallowed_special=())


def split_into_token_chunks(
    content: str,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    encode: Encoder | None = None,
) -> list[TokenChunk]:
    """Split *content* into overlapping line windows bounded by *max_tokens*.

    Args:
        content: Full decoded text of a file.
        max_tokens: Token budget per chunk, clamped to [256, 2048].
        overlap_tokens: Tokens to repeat between adjacent chunks, clamped to
            [0, max_tokens - 1]. 0 means adjacent chunks share no lines.
        encode: Tokenizer override; defaults to tiktoken cl100k_base.

    Returns:
        Ordered chunks. Empty content yields an empty list. A single line that
        alone exceeds the budget becomes its own chunk.
    """
    if not content:
        return []

    lines = content.split("\n")
    # A final newline terminates the last line; it does not open a new one.
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    encode = encode or default_encoder

    try:
        token_starts, token_ends = _token_offsets(lines, encode)
    except Exception as exc:
        logger.warning("Tokenizer unavailable, indexing document as one chunk: %s", exc)
        return [_whole_document(content, len(lines), max(1, len(content) // 4))]

    max_tokens = clamp_max_tokens(max_tokens)
    overlap_tokens = clamp_overlap_tokens(overlap_tokens, max_tokens)
    total_tokens = token_ends[-1]

    if total_tokens <= max_tokens:
        return [_whole_document(content, len(lines), total_tokens)]

    chunks: list[TokenChunk] = []
    n_lines = len(lines)
    start = 0

    while start < n_lines:
        chunk_token_start = token_starts[start]

        # Grow the window one line at a time; the first line is always taken.
        end = start + 1
        while end < n_lines and token_ends[end] - chunk_token_start <= max_tokens:
            end += 1

        chunk_token_end = token_ends[end - 1]
        chunks.append(
            TokenChunk(
                text="\n".join(lines[start:end]),
                line_start=start + 1,
                line_end=end,
                token_start=chunk_token_start,
                token_end=chunk_token_end,
            )
        )

        if end >= n_lines:
            break

        if overlap_tokens == 0:
            start = end
            continue

        start = _overlap_start(
            token_starts, start, end, max(chunk_token_start, chunk_token_end - overlap_tokens)
        )

    return chunks


def _token_offsets(lines: list[str], encode: Encoder) -> tuple[list[int], list[int]]:
    """Cumulative token offsets: line i covers tokens [starts[i], ends[i])."""
    starts: list[int] = []
    ends: list[int] = []
    total = 0
    for line in lines:
        starts.append(total)
        total += len(encode(line))
        ends.append(total)
    return starts, ends


def _overlap_start(token_starts: list[int], start: int, end: int, target: int) -> int:
    """Earliest line after *start* whose start offset is >= *target*.

    The line right after the window always qualifies (its offset equals the
    window's end token), so the result lies in (start, end].
    """
    for i in range(start + 1, end):
        if token_starts[i] >= target:
            return i
    return end


def _whole_document(content: str, n_lines: int, token_count: int) -> TokenChunk:
    return TokenChunk(
        text=content,
        line_start=1,
        line_end=n_lines,
        token_start=0,
        token_end=token_count,
    )


class TokenChunker:
    """Chunker with fixed token settings, shared across files of one run.

    Args:
        max_tokens: Token budget per chunk (clamped to [256, 2048]).
        overlap_tokens: Overlap between adjacent chunks (clamped to [0, max - 1]).
        encode: Tokenizer override (tests inject a deterministic one).
    """

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
        encode: Encoder | None = None,
    ) -> None:
        self.max_tokens = clamp_max_tokens(max_tokens)
        self.overlap_tokens = clamp_overlap_tokens(overlap_tokens, self.max_tokens)
        self._encode = encode

    def chunk(self, content: str) -> list[TokenChunk]:
        return split_into_token_chunks(
            content, self.max_tokens, self.overlap_tokens, encode=self._encode
        )

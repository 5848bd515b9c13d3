"""Line-based chunking of source text."""

from __future__ import annotations

import math
from typing import Iterator, NamedTuple


class LineChunk(NamedTuple):
    start_line: int
    end_line: int
    text: str


def overlap_size(chunk_lines: int, overlap_percent: int) -> int:
    """Number of lines shared by consecutive chunks (never less than one)."""
    return max(1, math.ceil(chunk_lines * overlap_percent / 100))


def split_lines(content: str) -> list[str]:
    """Split on newlines, dropping trailing empty segments."""
    lines = content.split("\n")
    while lines and lines[-1] == "":
        lines.pop()
    return lines


def chunk_lines(
    content: str, *, chunk_lines: int = 50, overlap_percent: int = 10
) -> Iterator[LineChunk]:
    """Split text into overlapping windows of whole lines.

    A file that fits in one window is returned verbatim as a single chunk.
    Otherwise windows of ``chunk_lines`` advance by ``chunk_lines - overlap``;
    when fewer than ``overlap`` lines would remain after a window, that window
    is stretched to the end of the file instead of emitting a tiny tail.
    """
    if chunk_lines < 1:
        raise ValueError("chunk_lines must be positive")
    overlap = overlap_size(chunk_lines, overlap_percent)
    step = chunk_lines - overlap
    if step < 1:
        raise ValueError(
            f"Overlap of {overlap} lines leaves no room to advance a {chunk_lines}-line window"
        )

    lines = split_lines(content)
    total = len(lines)
    if total == 0:
        return
    if total <= chunk_lines:
        yield LineChunk(1, total, content)
        return

    for start in range(0, total, step):
        end = min(start + chunk_lines, total)
        if end < total and total - end < overlap:
            end = total
        text = "".join(line + "\n" for line in lines[start:end])
        yield LineChunk(start + 1, end, text)
        if end == total:
            break

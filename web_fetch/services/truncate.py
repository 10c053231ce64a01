from dataclasses import dataclass
from typing import Optional

from web_fetch.core.config import settings


@dataclass(frozen=True)
class Truncation:
    content: str
    truncated: bool
    total_lines: int
    output_lines: int
    total_bytes: int
    output_bytes: int


def truncate_head(text: str, max_lines: Optional[int] = None, max_bytes: Optional[int] = None) -> Truncation:
    """
    Keep whole lines from the start of ``text`` within both budgets.

    Byte sizes are UTF-8. A first line that alone exceeds the byte budget is
    cut at the last complete character that fits.
    """
    max_lines = settings.TRUNCATE_MAX_LINES if max_lines is None else max_lines
    max_bytes = settings.TRUNCATE_MAX_BYTES if max_bytes is None else max_bytes

    lines = text.split("\n")
    total_lines = len(lines)
    total_bytes = len(text.encode("utf-8"))
    if total_lines <= max_lines and total_bytes <= max_bytes:
        return Truncation(text, False, total_lines, total_lines, total_bytes, total_bytes)

    kept = []
    used = 0
    for line in lines[:max_lines]:
        size = len(line.encode("utf-8")) + (1 if kept else 0)
        if used + size > max_bytes:
            break
        kept.append(line)
        used += size

    if not kept:
        kept = [lines[0].encode("utf-8")[:max_bytes].decode("utf-8", errors="ignore")]

    content = "\n".join(kept)
    return Truncation(
        content=content,
        truncated=True,
        total_lines=total_lines,
        output_lines=len(kept),
        total_bytes=total_bytes,
        output_bytes=len(content.encode("utf-8")),
    )


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes}B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f}KB"
    return f"{num_bytes / (1024 * 1024):.1f}MB"


def truncated_text(text: str) -> str:
    """Head-truncate ``text`` and append a note saying how much was cut, if anything was."""
    result = truncate_head(text)
    if not result.truncated:
        return result.content
    return (
        f"{result.content}\n\n[Output truncated: {result.output_lines} of {result.total_lines} lines "
        f"({format_size(result.output_bytes)} of {format_size(result.total_bytes)})]"
    )

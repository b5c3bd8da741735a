# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Line formatting and size-bounded chunking of buffered log events."""

from typing import Iterable, List

from .diagnostics import delivery_logger
from .webhook import MESSAGE_CONTENT_LIMIT

logger = delivery_logger(__name__)


def format_lines(source: str, text: str) -> List[str]:
    """Render one log event as newline-terminated ``[source]: line`` strings.

    Multi-line text produces one prefixed line per source line so every
    delivered line stays attributable.
    """
    return [f"[{source}]: {line}\n" for line in text.strip().split("\n")]


def chunk_lines(lines: Iterable[str], limit: int = MESSAGE_CONTENT_LIMIT) -> List[str]:
    """Greedily pack lines into chunks whose UTF-8 size is at most *limit* bytes.

    Lines are never split. A line that alone exceeds *limit* becomes its own
    chunk, unchanged.

    Args:
        lines: Newline-terminated lines, in delivery order
        limit: Maximum chunk size in bytes

    Returns:
        Chunks whose concatenation equals the concatenation of *lines*
    """
    chunks: List[str] = []
    current: List[str] = []
    current_size = 0

    for line in lines:
        line_size = len(line.encode("utf-8"))
        if current and current_size + line_size > limit:
            chunks.append("".join(current))
            current = []
            current_size = 0

        if line_size > limit:
            logger.debug(f"Line of {line_size} bytes exceeds the {limit} byte limit; sending alone")

        current.append(line)
        current_size += line_size

    if current:
        chunks.append("".join(current))

    return chunks

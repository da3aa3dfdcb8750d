"""Reply formatting for WhatsApp delivery.

Long replies read badly as a single WhatsApp bubble, so they are cut into
short chunks at natural break points before being sent. This module also
computes the synthetic reading and typing delays used by the delivery layer.

Everything here is pure: no I/O, no logging side effects beyond debug output.
"""

import random
import re
from typing import Callable, List, Optional

from src.config.interaction import ChunkingConfig
from src.models.message import MessageChunk


_PUNCTUATION_RE = re.compile(r"[.!?,;:]")


def normalize_whitespace(text: str) -> str:
    text = re.sub(r'\r\n', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    text = re.sub(r' {2,}', ' ', text)
    text = text.strip()
    return text


def split_long_line(line: str, options: ChunkingConfig) -> List[str]:
    """Cut a single over-long line into pieces of at most ``max_chunk_length``.

    The preferred break points are tried in order; a break point is accepted
    only if it occurs after ``min_chunk_length`` characters inside the
    ``max_chunk_length`` window. Without one the line is force-split at the
    window boundary.
    """

    pieces: List[str] = []
    remaining = line

    while len(remaining) > options.max_chunk_length:
        window = remaining[: options.max_chunk_length]
        split_index = -1

        for break_point in options.break_points:
            last_index = window.rfind(break_point)
            if last_index > options.min_chunk_length:
                split_index = last_index + len(break_point)
                break

        if split_index == -1:
            split_index = options.max_chunk_length

        pieces.append(remaining[:split_index].strip())
        remaining = remaining[split_index:].strip()

    if remaining:
        pieces.append(remaining)

    return pieces


def split_message(text: str, options: Optional[ChunkingConfig] = None) -> List[MessageChunk]:
    """Split ``text`` into ordered chunks; the last one has ``is_last=True``.

    Short texts (no more than ``max_lines_per_chunk`` lines and
    ``max_chunk_length`` characters) come back as a single chunk untouched.

    Examples:
        >>> [c.text for c in split_message("Bonjour")]
        ['Bonjour']
        >>> chunks = split_message("\\n".join(str(i) for i in range(6)))
        >>> [c.text for c in chunks]
        ['0\\n1\\n2\\n3', '4\\n5']
        >>> [c.is_last for c in chunks]
        [False, True]
    """

    opts = options or ChunkingConfig()
    lines = text.split("\n")

    if len(lines) <= opts.max_lines_per_chunk and len(text) <= opts.max_chunk_length:
        return [MessageChunk(text=text, index=0, is_last=True)]

    texts: List[str] = []
    current = ""
    line_count = 0

    def flush() -> None:
        stripped = current.strip()
        if stripped:
            texts.append(stripped)

    for line in lines:
        if len(line) > opts.max_chunk_length:
            flush()
            pieces = split_long_line(line, opts)
            texts.extend(piece for piece in pieces[:-1] if piece)
            current = pieces[-1] if pieces else ""
            line_count = 1
            continue

        exceeds_lines = line_count >= opts.max_lines_per_chunk
        exceeds_chars = len(current + "\n" + line) > opts.max_chunk_length

        if current and (exceeds_lines or exceeds_chars):
            flush()
            current = line
            line_count = 1
        else:
            current = f"{current}\n{line}" if current else line
            line_count += 1

    flush()

    if not texts:
        texts.append(text.strip())

    last = len(texts) - 1
    return [MessageChunk(text=t, index=i, is_last=(i == last)) for i, t in enumerate(texts)]


def count_words(text: str) -> int:
    return len(text.split(" "))


def calculate_typing_delay(
    text: str,
    base_delay: int = 1500,
    rand: Callable[[], float] = random.random,
) -> int:
    """Typing duration in ms: base + 200/word + 300/punctuation, ±20 %.

    The value is clamped to [1000, 5000] before jitter is applied.
    """

    words = count_words(text)
    punctuation = len(_PUNCTUATION_RE.findall(text))

    delay = base_delay + words * 200 + punctuation * 300
    delay = min(max(delay, 1000), 5000)

    delay += (rand() - 0.5) * (delay * 0.2)
    return round(delay)


def calculate_read_delay(
    text: str,
    per_word: int = 150,
    min_delay: int = 500,
    max_delay: int = 2000,
    rand: Callable[[], float] = random.random,
) -> int:
    """Reading pause in ms before answering, ±100 ms."""

    delay = count_words(text) * per_word
    delay = min(max(delay, min_delay), max_delay)

    delay += (rand() - 0.5) * 200
    return round(delay)


def chunk_pause(chunk_text: str, short: int = 1000, medium: int = 2000, long: int = 3000) -> int:
    """Base pause after a chunk, picked by how many lines it had."""

    lines = len(chunk_text.split("\n"))
    if lines <= 2:
        return short
    if lines <= 4:
        return medium
    return long

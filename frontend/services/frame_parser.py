import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator

from frontend.services.errors import MalformedFrame

logger = logging.getLogger(__name__)


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Split a byte stream into trimmed, non-empty lines.

    A partial trailing line is buffered until the next chunk arrives and is
    flushed when the stream closes.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        if not chunk:
            continue
        buffer += decoder.decode(chunk)
        while (newline_index := buffer.find("\n")) >= 0:
            line = buffer[:newline_index].strip()
            buffer = buffer[newline_index + 1:]
            if line:
                yield line

    buffer += decoder.decode(b"", final=True)
    tail = buffer.strip()
    if tail:
        yield tail


def parse_frame(line: str) -> dict:
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedFrame(line, str(e)) from e
    if not isinstance(payload, dict):
        raise MalformedFrame(line, f"expected an object, got {type(payload).__name__}")
    return payload


async def iter_frames(lines: AsyncIterable[str]) -> AsyncIterator[dict]:
    """Parse each line into a frame, skipping lines that are not JSON objects."""
    async for line in lines:
        try:
            yield parse_frame(line)
        except MalformedFrame as e:
            logger.warning("Skipping stream line: %s", e)

"""Incremental consumption of server-sent-event completion streams.

Chunks arrive with arbitrary boundaries: one record may span several chunks
and one chunk may hold several records. The consumer keeps a rolling buffer
and only interprets complete lines:

- blank lines and ``:`` comments are skipped
- ``data: [DONE]`` ends consumption immediately
- any other ``data: `` line is parsed as JSON and its
  ``choices[0].delta.content`` is appended to the text

A data line that does not parse is treated as an incomplete record. It is held
in front of the buffer and the next line is joined onto it once more input
arrives. A held fragment followed by a line that is self-delimiting (blank,
comment or another data line) can no longer be completed and is dropped.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
COMMENT_PREFIX = ":"
DONE_SENTINEL = "[DONE]"
DONE_EVENT = f"{DATA_PREFIX}{DONE_SENTINEL}\n\n"


def encode_event(text: str) -> str:
    """Frame a text delta the same way the completion service does."""

    fragment = {"choices": [{"index": 0, "delta": {"content": text}}]}
    return f"{DATA_PREFIX}{json.dumps(fragment, ensure_ascii=False)}\n\n"


def _delta_text(fragment: object) -> str:
    if not isinstance(fragment, dict):
        return ""
    choices = fragment.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def _is_self_delimiting(line: str) -> bool:
    return not line.strip() or line.startswith(COMMENT_PREFIX) or line.startswith(DATA_PREFIX)


class StreamConsumer:
    """Reassembles streamed text fragments in arrival order."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._pending = ""
        self._parts: list[str] = []
        self.done = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, chunk: bytes | str) -> list[str]:
        """Add one chunk and return the text deltas it completed."""

        if self.done:
            return []
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        deltas: list[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            if not self._handle_line(line, deltas):
                # Held back until the next chunk arrives.
                break
        return deltas

    def finish(self) -> list[str]:
        """Flush residual buffered content at end of stream."""

        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        residual, self._buffer = self._buffer, ""

        deltas: list[str] = []
        for line in residual.split("\n"):
            if self.done:
                break
            self._handle_line(line, deltas)
        if self._pending:
            logger.debug(
                "Discarding incomplete fragment at end of stream",
                extra={"fragment": self._pending[:200]},
            )
            self._pending = ""
        self.done = True
        return deltas

    def _handle_line(self, line: str, deltas: list[str]) -> bool:
        """Interpret one complete line; return False when it was held back."""

        if line.endswith("\r"):
            line = line[:-1]

        if self._pending:
            if _is_self_delimiting(line):
                logger.debug(
                    "Dropping unterminated fragment", extra={"fragment": self._pending[:200]}
                )
            else:
                line = self._pending + line
            self._pending = ""

        if not line.strip() or line.startswith(COMMENT_PREFIX):
            return True
        if not line.startswith(DATA_PREFIX):
            return True

        data = line[len(DATA_PREFIX) :].strip()
        if data == DONE_SENTINEL:
            self.done = True
            return True

        try:
            fragment = json.loads(data)
        except json.JSONDecodeError:
            self._pending = line
            return False

        delta = _delta_text(fragment)
        if delta:
            self._parts.append(delta)
            deltas.append(delta)
        return True


def consume_stream(
    chunks: Iterable[bytes | str], consumer: StreamConsumer | None = None
) -> Iterator[str]:
    """Yield the text reassembled so far after every parsed fragment."""

    consumer = consumer or StreamConsumer()
    so_far = consumer.text
    for chunk in chunks:
        for delta in consumer.feed(chunk):
            so_far += delta
            yield so_far
        if consumer.done:
            return
    for delta in consumer.finish():
        so_far += delta
        yield so_far

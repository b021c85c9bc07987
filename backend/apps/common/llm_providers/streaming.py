"""
Incremental decoder for chat-completion event streams.

The provider answers with newline-delimited records of the form
``data: <json>`` terminated by ``data: [DONE]``. Network reads split those
records arbitrarily, so the decoder keeps the partial trailing line between
reads, extracts the ``choices[0].delta.content`` fragment from each complete
record and coalesces fragments into fewer, larger chunks:

    decoder = StreamDecoder()
    async for text in decoder.decode(response.aiter_bytes()):
        ...  # ordered, non-overlapping fragments of decoder.full_text

A chunk is released once the pending text reaches ``chunk_size`` characters
or ``flush_interval`` seconds have passed since the previous release; any
remainder is released exactly once at end of stream.

Lifecycle: IDLE -> STREAMING -> COMPLETED | FAILED. A decoder belongs to a
single request and is discarded once it reaches a terminal state.
"""
import codecs
import enum
import json
import logging
import time
from typing import Any, AsyncIterable, AsyncIterator, Callable, Optional

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

DEFAULT_CHUNK_SIZE = 100
DEFAULT_FLUSH_INTERVAL = 0.05  # seconds


class DecoderState(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (DecoderState.COMPLETED, DecoderState.FAILED)


def extract_delta(payload: Any) -> str:
    """Return ``choices[0].delta.content`` or an empty string."""
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class StreamDecoder:
    """Turns raw provider bytes into coalesced text chunks."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.chunk_size = chunk_size
        self.flush_interval = flush_interval
        self._clock = clock
        # Multi-byte characters may straddle two reads.
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

        self.state = DecoderState.IDLE
        self.leftover = ""
        self.pending = ""
        self.full_text = ""
        self.last_emit: Optional[float] = None
        self.sentinel_seen = False
        self.skipped_records = 0

    # ── Feeding ──────────────────────────────────────────────────────────

    def feed(self, data: bytes) -> Optional[str]:
        """Consume one transport read; return a chunk if one is due."""
        self._start()
        self._consume(self._utf8.decode(data))
        return self._maybe_flush()

    def finish(self) -> Optional[str]:
        """Handle end of stream; return the final chunk, if any."""
        self._start()
        self._consume(self._utf8.decode(b"", final=True))
        if self.leftover:
            record, self.leftover = self.leftover, ""
            self._handle_record(record)
        self.state = DecoderState.COMPLETED
        if self.pending:
            return self._emit(self._clock())
        return None

    def fail(self) -> None:
        if self.state not in TERMINAL_STATES:
            self.state = DecoderState.FAILED

    async def decode(self, byte_stream: AsyncIterable[bytes]) -> AsyncIterator[str]:
        """
        Async-iterator form of the decoder.

        Normal exhaustion means the stream completed; an exception from the
        transport propagates to the consumer and leaves the decoder FAILED.
        Reading stops as soon as the ``[DONE]`` sentinel is seen.
        """
        try:
            async for data in byte_stream:
                chunk = self.feed(data)
                if chunk:
                    yield chunk
                if self.sentinel_seen:
                    break
        except BaseException:
            self.fail()
            raise

        final = self.finish()
        if final:
            yield final

    # ── Internals ────────────────────────────────────────────────────────

    def _start(self) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Stream decoder is already {self.state.value}")
        if self.state is DecoderState.IDLE:
            self.state = DecoderState.STREAMING
            self.last_emit = self._clock()

    def _consume(self, text: str) -> None:
        if not text:
            return
        *records, self.leftover = (self.leftover + text).split("\n")
        for record in records:
            self._handle_record(record)

    def _handle_record(self, line: str) -> None:
        if self.sentinel_seen:
            return
        record = line.rstrip("\r")
        if not record.strip() or not record.startswith(DATA_PREFIX):
            return

        payload = record[len(DATA_PREFIX):]
        if payload.strip() == DONE_SENTINEL:
            self.sentinel_seen = True
            return

        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            self.skipped_records += 1
            logger.warning(
                "stream_record_malformed",
                extra={"record_preview": payload[:200]},
            )
            return

        delta = extract_delta(parsed)
        if delta:
            self.pending += delta
            self.full_text += delta

    def _maybe_flush(self) -> Optional[str]:
        if not self.pending:
            return None
        now = self._clock()
        if len(self.pending) >= self.chunk_size or now - self.last_emit >= self.flush_interval:
            return self._emit(now)
        return None

    def _emit(self, now: float) -> str:
        chunk, self.pending = self.pending, ""
        self.last_emit = now
        return chunk

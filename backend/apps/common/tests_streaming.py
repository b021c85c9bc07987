"""
Tests for the chat-completion stream decoder

Covers:
- record framing across arbitrary read boundaries (bytes and UTF-8)
- coalescing by size and by elapsed time, final flush
- [DONE] handling, malformed records, lifecycle states
- the async ``decode`` form and independence of concurrent decoders
"""
import asyncio
import json
from unittest.mock import patch

from django.test import SimpleTestCase

from apps.common.llm_providers.streaming import (
    DecoderState,
    StreamDecoder,
    extract_delta,
)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _record(content):
    payload = {"choices": [{"index": 0, "delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n".encode("utf-8")


DONE = b"data: [DONE]\n"


def _run(decoder, reads):
    """Feed every read, then finish; return all emitted chunks."""
    chunks = []
    for data in reads:
        chunk = decoder.feed(data)
        if chunk:
            chunks.append(chunk)
    final = decoder.finish()
    if final:
        chunks.append(final)
    return chunks


async def _byte_stream(reads, delay=None):
    for data in reads:
        if delay is not None:
            await asyncio.sleep(delay)
        yield data


class StreamDecoderFramingTest(SimpleTestCase):

    def test_single_record_then_done(self):
        clock = FakeClock()
        decoder = StreamDecoder(clock=clock)

        chunks = _run(decoder, [_record("Hello") + DONE])

        self.assertEqual(chunks, ["Hello"])
        self.assertEqual(decoder.full_text, "Hello")
        self.assertEqual(decoder.state, DecoderState.COMPLETED)

    def test_byte_at_a_time_matches_single_read(self):
        body = b"".join([
            _record("Bonjour, "),
            _record("café "),
            _record("你好"),
            b"\n",
            _record(" 🚀 done"),
            DONE,
        ])

        whole = StreamDecoder(clock=FakeClock())
        whole_text = "".join(_run(whole, [body]))

        split = StreamDecoder(clock=FakeClock())
        split_text = "".join(_run(split, [body[i:i + 1] for i in range(len(body))]))

        self.assertEqual(whole_text, "Bonjour, café 你好 🚀 done")
        self.assertEqual(split_text, whole_text)
        self.assertEqual(split.full_text, whole.full_text)
        self.assertEqual(split.skipped_records, 0)

    def test_record_split_across_reads_is_reassembled(self):
        decoder = StreamDecoder(clock=FakeClock())
        reads = [
            b'data: {"choices":[{"delta":{"con',
            b'tent":"Hi"}}]}\n',
            DONE,
        ]

        chunks = _run(decoder, reads)

        self.assertEqual("".join(chunks), "Hi")
        self.assertEqual(decoder.skipped_records, 0)

    def test_crlf_line_endings(self):
        decoder = StreamDecoder(clock=FakeClock())
        body = _record("a").replace(b"\n", b"\r\n") + b"data: [DONE]\r\n"

        self.assertEqual(_run(decoder, [body]), ["a"])

    def test_blank_and_non_data_lines_are_ignored(self):
        decoder = StreamDecoder(clock=FakeClock())
        body = b"\n: keep-alive\nevent: message\n" + _record("x") + b"\n\n" + DONE

        self.assertEqual(_run(decoder, [body]), ["x"])
        self.assertEqual(decoder.skipped_records, 0)

    def test_unterminated_last_record_is_processed_on_finish(self):
        decoder = StreamDecoder(clock=FakeClock())

        self.assertIsNone(decoder.feed(_record("tail").rstrip(b"\n")))
        self.assertEqual(decoder.finish(), "tail")

    def test_records_without_content_emit_nothing(self):
        decoder = StreamDecoder(clock=FakeClock())
        role_only = b'data: {"choices":[{"delta":{"role":"assistant"}}]}\n'
        finish = b'data: {"choices":[{"delta":{},"finish_reason":"stop"}]}\n'

        self.assertEqual(_run(decoder, [role_only, finish, DONE]), [])
        self.assertEqual(decoder.full_text, "")


class StreamDecoderCoalescingTest(SimpleTestCase):

    def test_size_threshold_reduces_chunk_count(self):
        reads = [_record("ab") for _ in range(50)] + [DONE]

        eager = StreamDecoder(chunk_size=1, clock=FakeClock())
        eager_chunks = _run(eager, reads)

        coalesced = StreamDecoder(chunk_size=10, clock=FakeClock())
        coalesced_chunks = _run(coalesced, reads)

        self.assertEqual(len(eager_chunks), 50)
        self.assertEqual(len(coalesced_chunks), 10)
        self.assertTrue(all(len(chunk) >= 10 for chunk in coalesced_chunks))
        self.assertEqual("".join(coalesced_chunks), "ab" * 50)

    def test_time_threshold_releases_small_chunk(self):
        clock = FakeClock()
        decoder = StreamDecoder(chunk_size=100, flush_interval=0.05, clock=clock)

        self.assertIsNone(decoder.feed(_record("a")))
        clock.advance(0.06)
        self.assertEqual(decoder.feed(_record("b")), "ab")

        # Timer restarts after every release
        self.assertIsNone(decoder.feed(_record("c")))
        clock.advance(0.02)
        self.assertIsNone(decoder.feed(_record("d")))
        self.assertEqual(decoder.finish(), "cd")

    def test_final_flush_happens_once_before_completion(self):
        decoder = StreamDecoder(chunk_size=100, clock=FakeClock())
        decoder.feed(_record("partial"))
        self.assertEqual(decoder.pending, "partial")

        self.assertEqual(decoder.finish(), "partial")
        self.assertEqual(decoder.pending, "")
        self.assertEqual(decoder.state, DecoderState.COMPLETED)

        with self.assertRaises(RuntimeError):
            decoder.finish()

    def test_chunks_concatenate_to_full_text_at_every_step(self):
        decoder = StreamDecoder(chunk_size=4, clock=FakeClock())
        emitted = ""
        for word in ["one ", "two ", "three ", "four"]:
            chunk = decoder.feed(_record(word))
            if chunk:
                emitted += chunk
            self.assertEqual(emitted + decoder.pending, decoder.full_text)


class StreamDecoderRecordsTest(SimpleTestCase):

    def test_done_is_never_parsed_or_emitted(self):
        decoder = StreamDecoder(clock=FakeClock())

        with patch(
            'apps.common.llm_providers.streaming.json.loads',
            wraps=json.loads,
        ) as loads:
            chunks = _run(decoder, [_record("A") + DONE + _record("B")])

        self.assertEqual(chunks, ["A"])
        self.assertTrue(decoder.sentinel_seen)
        parsed = [call.args[0] for call in loads.call_args_list]
        self.assertNotIn("[DONE]", parsed)
        self.assertNotIn("[DONE]", decoder.full_text)

    def test_malformed_record_is_skipped_and_logged(self):
        decoder = StreamDecoder(clock=FakeClock())
        body = _record("A") + b"data: {not json\n" + _record("B") + DONE

        with self.assertLogs('apps.common.llm_providers.streaming', level='WARNING') as logs:
            chunks = _run(decoder, [body])

        self.assertEqual("".join(chunks), "AB")
        self.assertEqual(decoder.skipped_records, 1)
        self.assertEqual(decoder.state, DecoderState.COMPLETED)
        self.assertIn("stream_record_malformed", logs.output[0])

    def test_extract_delta_tolerates_unexpected_shapes(self):
        self.assertEqual(extract_delta({"choices": [{"delta": {"content": "x"}}]}), "x")
        self.assertEqual(extract_delta({"choices": []}), "")
        self.assertEqual(extract_delta({"choices": [{"delta": {"content": None}}]}), "")
        self.assertEqual(extract_delta({"choices": ["oops"]}), "")
        self.assertEqual(extract_delta({"error": {"message": "bad"}}), "")
        self.assertEqual(extract_delta(["not", "a", "dict"]), "")


class StreamDecoderLifecycleTest(SimpleTestCase):

    def test_states(self):
        decoder = StreamDecoder(clock=FakeClock())
        self.assertEqual(decoder.state, DecoderState.IDLE)

        decoder.feed(b"")
        self.assertEqual(decoder.state, DecoderState.STREAMING)

        decoder.finish()
        self.assertEqual(decoder.state, DecoderState.COMPLETED)

    def test_terminal_states_are_absorbing(self):
        decoder = StreamDecoder(clock=FakeClock())
        decoder.feed(_record("a"))
        decoder.fail()
        self.assertEqual(decoder.state, DecoderState.FAILED)

        with self.assertRaises(RuntimeError):
            decoder.feed(_record("b"))

        decoder.fail()
        self.assertEqual(decoder.state, DecoderState.FAILED)

        completed = StreamDecoder(clock=FakeClock())
        completed.finish()
        completed.fail()
        self.assertEqual(completed.state, DecoderState.COMPLETED)


class StreamDecoderAsyncTest(SimpleTestCase):

    async def test_decode_yields_chunks_then_completes(self):
        decoder = StreamDecoder(chunk_size=1, clock=FakeClock())
        reads = [_record("Hel"), _record("lo"), DONE]

        chunks = [chunk async for chunk in decoder.decode(_byte_stream(reads))]

        self.assertEqual(chunks, ["Hel", "lo"])
        self.assertEqual(decoder.state, DecoderState.COMPLETED)

    async def test_decode_stops_reading_after_done(self):
        reads_consumed = []

        async def transport():
            for data in [_record("A"), DONE, _record("never read")]:
                reads_consumed.append(data)
                yield data

        decoder = StreamDecoder(clock=FakeClock())
        chunks = [chunk async for chunk in decoder.decode(transport())]

        self.assertEqual("".join(chunks), "A")
        self.assertEqual(len(reads_consumed), 2)

    async def test_decode_transport_error_fails_decoder(self):
        async def broken_transport():
            yield _record("A")
            raise ConnectionResetError("peer went away")

        decoder = StreamDecoder(chunk_size=1, clock=FakeClock())
        received = []
        with self.assertRaises(ConnectionResetError):
            async for chunk in decoder.decode(broken_transport()):
                received.append(chunk)

        self.assertEqual(received, ["A"])
        self.assertEqual(decoder.state, DecoderState.FAILED)

    async def test_concurrent_decoders_are_independent(self):
        first_reads = [_record(f"a{i} ") for i in range(20)] + [DONE]
        second_reads = [_record(f"b{i} ") for i in range(20)] + [DONE]

        async def consume(reads):
            decoder = StreamDecoder(chunk_size=7)
            text = "".join([chunk async for chunk in decoder.decode(_byte_stream(reads, delay=0))])
            return decoder, text

        (first, first_text), (second, second_text) = await asyncio.gather(
            consume(first_reads),
            consume(second_reads),
        )

        self.assertEqual(first_text, "".join(f"a{i} " for i in range(20)))
        self.assertEqual(second_text, "".join(f"b{i} " for i in range(20)))
        self.assertEqual(first.full_text, first_text)
        self.assertEqual(second.full_text, second_text)

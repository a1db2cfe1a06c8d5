"""Streaming reader tests, driven with synthetic server-sent event lines."""

import json
from unittest.mock import patch

import httpx
import pytest

from terminalgpt import stream
from terminalgpt.errors import StreamDecodeError
from terminalgpt.stream import StreamReader, StreamState, decode_event

from conftest import char_counter, word_counter


def chunk(content=None, finish_reason=None, index=0):
    delta = {} if content is None else {"content": content}
    event = {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "choices": [{"index": index, "delta": delta, "finish_reason": finish_reason}],
    }
    return f"data: {json.dumps(event)}"


def test_accumulates_chunks_into_reply():
    lines = [chunk("Hel"), chunk("lo"), chunk(finish_reason="stop"), "data: [DONE]"]
    result = StreamReader("gpt-4", counter=char_counter).read(lines)

    assert result.reply == "Hello"
    assert result.response_tokens == char_counter("Hello", "gpt-4")
    assert result.finish_reason == "stop"


def test_per_chunk_tally_matches_joined_count_on_aligned_boundaries():
    """With a character counter every chunk boundary is a token boundary, so both conventions agree."""
    lines = [chunk("Hel"), chunk("lo"), chunk(finish_reason="stop")]
    result = StreamReader("gpt-4", counter=char_counter).read(lines)

    assert result.streamed_tokens == char_counter("Hel", "gpt-4") + char_counter("lo", "gpt-4")
    assert result.streamed_tokens == result.response_tokens


def test_per_chunk_tally_can_differ_from_joined_count():
    """A word split across chunks counts twice per chunk but once when joined."""
    lines = [chunk("Hel"), chunk("lo world"), chunk(finish_reason="stop")]
    result = StreamReader("gpt-4", counter=word_counter).read(lines)

    assert result.reply == "Hello world"
    assert result.streamed_tokens == 3
    assert result.response_tokens == 2


def test_deltas_are_emitted_in_order():
    seen = []
    lines = [chunk("a"), chunk("b"), chunk("c"), chunk(finish_reason="stop")]
    StreamReader("gpt-4", on_delta=seen.append, counter=char_counter).read(lines)

    assert seen == ["a", "b", "c"]


def test_done_sentinel_never_reaches_decoder():
    lines = [chunk("Hi"), "data: [DONE]", chunk("ignored")]
    with patch.object(stream, "decode_event", wraps=decode_event) as decoder:
        reader = StreamReader("gpt-4", counter=char_counter)
        result = reader.read(lines)

    assert decoder.call_count == 1
    assert "[DONE]" not in decoder.call_args[0][0]
    assert result.reply == "Hi"
    assert reader.state is StreamState.DONE


def test_feed_returns_false_after_done():
    reader = StreamReader("gpt-4", counter=char_counter)
    assert reader.feed("data: [DONE]") is False
    assert reader.feed(chunk("late")) is False
    assert reader.reply == ""


def test_finish_signal_stops_reading():
    lines = iter([chunk("one"), chunk(" two", finish_reason="length"), chunk("three")])
    result = StreamReader("gpt-4", counter=char_counter).read(lines)

    assert result.reply == "one two"
    assert result.finish_reason == "length"
    # The line after the finish signal was not consumed
    assert next(lines) == chunk("three")


def test_non_prefixed_lines_are_ignored():
    lines = ["", ": keep-alive", "event: message", chunk("ok"), "", chunk(finish_reason="stop")]
    result = StreamReader("gpt-4", counter=char_counter).read(lines)
    assert result.reply == "ok"


def test_bytes_and_crlf_lines():
    lines = [(chunk("by") + "\r\n").encode(), (chunk("tes") + "\n").encode(), b"data: [DONE]\r\n"]
    result = StreamReader("gpt-4", counter=char_counter).read(lines)
    assert result.reply == "bytes"


def test_empty_choices_are_skipped():
    preamble = 'data: {"id": "", "choices": [], "prompt_filter_results": []}'
    result = StreamReader("gpt-4", counter=char_counter).read(
        [preamble, chunk("fine"), chunk(finish_reason="stop")]
    )
    assert result.reply == "fine"


def test_garbled_event_is_fatal():
    reader = StreamReader("gpt-4", counter=char_counter)
    with pytest.raises(StreamDecodeError) as exc:
        reader.read([chunk("partial"), 'data: {"choices": [{"delta": '])

    assert "choices" in exc.value.line
    assert reader.reply == "partial"


@pytest.mark.parametrize(
    "payload",
    ['"just a string"', '{"no_choices": true}', '{"choices": ["x"]}', '{"choices": [{"delta": {"content": 5}}]}'],
)
def test_malformed_events_raise(payload):
    with pytest.raises(StreamDecodeError):
        decode_event(payload)


def test_end_of_stream_without_sentinel_is_clean():
    reader = StreamReader("gpt-4", counter=char_counter)
    result = reader.read([chunk("cut"), chunk(" short")])

    assert result.reply == "cut short"
    assert result.finish_reason is None
    assert reader.state is StreamState.DONE


def test_transport_error_propagates():
    def lines():
        yield chunk("so far")
        raise httpx.ReadError("connection reset")

    with pytest.raises(httpx.ReadError):
        StreamReader("gpt-4", counter=char_counter).read(lines())


def test_decode_event_fields():
    event = decode_event(json.dumps({"choices": [{"index": 2, "delta": {"role": "assistant"}, "finish_reason": None}]}))
    assert event.index == 2
    assert event.content == ""
    assert event.finish_reason is None


def test_invalid_utf8_is_a_decode_error():
    reader = StreamReader("gpt-4", counter=char_counter)
    with pytest.raises(StreamDecodeError) as exc:
        reader.read([chunk("ok").encode(), b"data: \xff\xfe broken"])
    assert "invalid UTF-8" in str(exc.value)
    assert reader.reply == "ok"

# tests/test_event_source.py
import pytest
from datetime import timedelta

from llmcli.errors import MissingDataError, RetryParseError
from llmcli.event_source import EventStreamDecoder, aiter_events, iter_events, parse_event

COMPLEX_EVENT = "id: 123\nevent: update\ndata: line1\ndata: line2\nretry: 5000\n\n"


# --- parse_event ---

def test_parse_simple_data():
    """A bare data line is a complete event."""
    event = parse_event("data: hello")
    assert event.data == "hello"
    assert event.id is None
    assert event.event_type is None
    assert event.retry is None


def test_parse_complex_event():
    """All four fields are parsed and data lines are joined with newlines."""
    event = parse_event(COMPLEX_EVENT)
    assert event.id == "123"
    assert event.event_type == "update"
    assert event.data == "line1\nline2"
    assert event.retry == timedelta(milliseconds=5000)


def test_parse_empty_input_rejected():
    with pytest.raises(MissingDataError):
        parse_event("")


def test_parse_event_without_data_rejected():
    with pytest.raises(MissingDataError):
        parse_event("id: 123\nevent: test\n")


def test_parse_invalid_retry_rejected():
    with pytest.raises(RetryParseError):
        parse_event("retry: invalid\ndata: test\n")


def test_parse_ignores_unknown_fields_and_comments():
    event = parse_event(": keep-alive\nfoo: bar\ndata: payload")
    assert event.data == "payload"


def test_parse_keeps_colons_in_value():
    event = parse_event('data: {"a": "b:c"}')
    assert event.data == '{"a": "b:c"}'


def test_parse_no_space_after_colon():
    assert parse_event("data:tight").data == "tight"


def test_parse_retry_rejects_non_ascii_digits():
    with pytest.raises(RetryParseError):
        parse_event("retry: ²\ndata: test")


def test_iter_events_skips_non_ascii_retry_and_continues():
    events = list(iter_events(["retry: ²\ndata: bad\n\ndata: good\n\n"]))
    assert [e.data for e in events] == ["good"]


@pytest.mark.parametrize("separator", ["\u2028", "\u2029", "\u0085", "\x0b", "\x0c", "\x1c"])
def test_unicode_line_separators_stay_inside_data(separator):
    payload = '{"type": "content_block_delta", "delta": {"type": "text_delta", "text": "a' + separator + 'b"}}'
    raw = ("event: content_block_delta\ndata: " + payload + "\n\n").encode("utf-8")
    events = list(iter_events([raw]))
    assert len(events) == 1
    assert events[0].data == payload
    assert events[0].event_type == "content_block_delta"


# --- streaming ---

def test_iter_events_splits_on_blank_lines():
    events = list(iter_events([b"data: one\n\ndata: two\n\n"]))
    assert [e.data for e in events] == ["one", "two"]


def test_iter_events_is_independent_of_chunk_boundaries():
    """Feeding the same bytes one at a time gives the same events."""
    raw = (COMPLEX_EVENT + "event: ping\ndata: {}\n\n").encode("utf-8")
    whole = list(iter_events([raw]))
    byte_by_byte = list(iter_events([raw[i:i + 1] for i in range(len(raw))]))
    assert whole == byte_by_byte
    assert len(whole) == 2


def test_iter_events_handles_split_multibyte_characters():
    raw = "data: héllo wörld ✓\n\n".encode("utf-8")
    # Split in the middle of the three-byte check mark.
    cut = raw.index("✓".encode("utf-8")) + 1
    events = list(iter_events([raw[:cut], raw[cut:]]))
    assert events[0].data == "héllo wörld ✓"


def test_iter_events_normalizes_crlf():
    events = list(iter_events([b"data: a\r\n\r\ndata: b\r", b"\n\r\n"]))
    assert [e.data for e in events] == ["a", "b"]


def test_iter_events_skips_records_without_data():
    events = list(iter_events([b": ping\n\nevent: noop\n\ndata: kept\n\n"]))
    assert [e.data for e in events] == ["kept"]


def test_iter_events_skips_bad_retry_and_continues():
    events = list(iter_events([b"retry: soon\ndata: dropped\n\ndata: kept\n\n"]))
    assert [e.data for e in events] == ["kept"]


def test_leftover_buffer_is_parsed_at_end_of_stream():
    events = list(iter_events([b"data: first\n\ndata: trailing"]))
    assert [e.data for e in events] == ["first", "trailing"]


def test_decoder_flush_on_empty_buffer():
    decoder = EventStreamDecoder()
    assert decoder.feed(b"data: x\n\n")[0].data == "x"
    assert decoder.flush() == []


@pytest.mark.asyncio
async def test_aiter_events_over_async_chunks():
    async def chunks():
        for part in (b"event: message_start\nda", b"ta: {\"a\": 1}\n", b"\ndata: done\n\n"):
            yield part

    events = [event async for event in aiter_events(chunks())]
    assert [e.event_type for e in events] == ["message_start", None]
    assert [e.data for e in events] == ['{"a": 1}', "done"]

# llmcli/event_source.py
"""
Server-Sent Events parsing.

Turns a raw byte stream (as delivered by `httpx.Response.aiter_bytes()`) into
`Event` objects. Events are separated by a blank line; a record may repeat the
`data:` field, in which case the values are joined with newlines.
"""
import codecs
import logging
from datetime import timedelta
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, List, Optional, Union

from llmcli.data_models import Event
from llmcli.errors import EventParseError, MissingDataError, RetryParseError

logger = logging.getLogger(__name__)

EVENT_DELIMITER = "\n\n"
FIELD_SEPARATOR = ":"


def parse_event(raw: str) -> Event:
    """
    Parses a single SSE record (without its trailing blank line).

    Unknown fields and comment lines are ignored. Raises MissingDataError when
    the record has no `data` field and RetryParseError when `retry` is not an
    integer number of milliseconds.
    """
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    retry: Optional[timedelta] = None
    data_lines: List[str] = []

    # Lines end at "\n" only; U+2028 and similar can appear inside JSON data.
    for line in raw.replace("\r\n", "\n").split("\n"):
        if not line or FIELD_SEPARATOR not in line:
            continue
        field, value = line.split(FIELD_SEPARATOR, 1)
        value = value.lstrip()
        if field == "id":
            event_id = value
        elif field == "event":
            event_type = value
        elif field == "data":
            data_lines.append(value)
        elif field == "retry":
            if not (value.isascii() and value.isdigit()):
                raise RetryParseError(value)
            retry = timedelta(milliseconds=int(value))
        # anything else (including "" for comment lines) is ignored

    if not data_lines:
        raise MissingDataError()

    return Event(id=event_id, event_type=event_type, data="\n".join(data_lines), retry=retry)


class EventStreamDecoder:
    """
    Incremental splitter. Feed it byte (or text) chunks of any size and it
    returns the events completed so far; `flush()` parses whatever is left
    once the underlying stream has ended.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: Union[bytes, str]) -> List[Event]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")

        events = []
        while EVENT_DELIMITER in self._buffer:
            raw, self._buffer = self._buffer.split(EVENT_DELIMITER, 1)
            event = _parse_or_skip(raw)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[Event]:
        remainder = (self._buffer + self._decoder.decode(b"", final=True)).replace("\r\n", "\n")
        self._buffer = ""
        if not remainder.strip():
            return []
        event = _parse_or_skip(remainder)
        return [event] if event is not None else []


def _parse_or_skip(raw: str) -> Optional[Event]:
    try:
        return parse_event(raw)
    except EventParseError as e:
        # Keep-alives and comment-only records land here too.
        logger.debug("Skipping SSE record %r: %s", raw, e)
        return None


def iter_events(chunks: Iterable[Union[bytes, str]]) -> Iterator[Event]:
    decoder = EventStreamDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.flush()


async def aiter_events(chunks: AsyncIterable[Union[bytes, str]]) -> AsyncIterator[Event]:
    """Async counterpart of iter_events, used over httpx response bodies."""
    decoder = EventStreamDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event

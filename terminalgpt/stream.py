"""
Incremental reader for streamed chat completions.

The server sends one JSON event per `data: ` line and a literal `[DONE]`
line at the end. Each content delta is handed to the caller as soon as it
is decoded, so the terminal can render the reply while it is generated.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from terminalgpt.errors import StreamDecodeError
from terminalgpt.tokens import TokenCounter, count_tokens

STREAM_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class StreamState(Enum):
    AWAITING_LINE = "awaiting_line"
    PARSING_EVENT = "parsing_event"
    ACCUMULATING = "accumulating"
    DONE = "done"


@dataclass(frozen=True)
class StreamEvent:
    index: int
    content: str
    finish_reason: str | None = None


@dataclass(frozen=True)
class StreamResult:
    reply: str
    response_tokens: int
    streamed_tokens: int
    finish_reason: str | None


def decode_event(payload: str) -> StreamEvent | None:
    """
    Decodes the JSON payload of one `data: ` line.

    Returns None for chunks without choices (e.g. Azure's content filter preamble).
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise StreamDecodeError(payload, e.msg) from e
    if not isinstance(data, dict):
        raise StreamDecodeError(payload, "event is not an object")
    choices = data.get("choices")
    if not isinstance(choices, list):
        raise StreamDecodeError(payload, "missing choices")
    if not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        raise StreamDecodeError(payload, "choice is not an object")
    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        raise StreamDecodeError(payload, "delta is not an object")
    content = delta.get("content") or ""
    if not isinstance(content, str):
        raise StreamDecodeError(payload, "content is not a string")
    return StreamEvent(
        index=choice.get("index", 0),
        content=content,
        finish_reason=choice.get("finish_reason"),
    )


class StreamReader:
    """Accumulates a streamed reply and tallies its tokens."""

    def __init__(
        self,
        model_name: str,
        on_delta: Callable[[str], None] | None = None,
        counter: TokenCounter = count_tokens,
    ):
        self.model_name = model_name
        self.on_delta = on_delta
        self.counter = counter
        self.state = StreamState.AWAITING_LINE
        self.parts: list[str] = []
        self.streamed_tokens = 0
        self.finish_reason: str | None = None

    @property
    def reply(self) -> str:
        return "".join(self.parts)

    def feed(self, line: str | bytes) -> bool:
        """Consumes one line. Returns False once the stream is finished."""
        if self.state is StreamState.DONE:
            return False
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                raise StreamDecodeError(
                    line.decode("utf-8", "replace"), f"invalid UTF-8: {e.reason}"
                ) from e
        line = line.rstrip("\r\n")
        if not line.startswith(STREAM_PREFIX):
            return True

        payload = line[len(STREAM_PREFIX) :].strip()
        if payload == DONE_SENTINEL:
            self.state = StreamState.DONE
            return False

        self.state = StreamState.PARSING_EVENT
        event = decode_event(payload)
        if event is None:
            self.state = StreamState.AWAITING_LINE
            return True

        self.state = StreamState.ACCUMULATING
        if event.content:
            self.parts.append(event.content)
            self.streamed_tokens += self.counter(event.content, self.model_name)
            if self.on_delta:
                self.on_delta(event.content)

        if event.finish_reason:
            self.finish_reason = event.finish_reason
            self.state = StreamState.DONE
            return False
        self.state = StreamState.AWAITING_LINE
        return True

    def read(self, lines: Iterable[str | bytes]) -> StreamResult:
        """Reads lines until the stream finishes or the input runs out."""
        for line in lines:
            if not self.feed(line):
                break
        if self.state is not StreamState.DONE:
            logging.info("Completion stream ended without a finish signal")
            self.state = StreamState.DONE
        return self.result()

    def result(self) -> StreamResult:
        reply = self.reply
        return StreamResult(
            reply=reply,
            response_tokens=self.counter(reply, self.model_name),
            streamed_tokens=self.streamed_tokens,
            finish_reason=self.finish_reason,
        )

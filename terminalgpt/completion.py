"""One chat turn: window the history, call the API, read the reply, persist it."""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from terminalgpt.client import CompletionClient
from terminalgpt.config import Config
from terminalgpt.history import HistoryEntry, HistoryStore
from terminalgpt.request_builder import build_messages, build_payload
from terminalgpt.stream import StreamReader
from terminalgpt.tokens import TokenCounter, count_tokens


@dataclass(frozen=True)
class CompletionResult:
    reply: str
    user_tokens: int
    system_tokens: int
    history_tokens: int
    response_tokens: int
    elapsed: float
    finish_reason: str | None = None
    dropped: int = 0

    @property
    def prompt_tokens(self) -> int:
        return self.user_tokens + self.system_tokens + self.history_tokens

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.response_tokens


def generate_completion(
    config: Config,
    user_message: str,
    history: HistoryStore,
    system_message: str | None = None,
    client: CompletionClient | None = None,
    on_delta: Callable[[str], None] | None = None,
    counter: TokenCounter = count_tokens,
) -> CompletionResult:
    """
    Runs a full request/response round trip.

    Budget errors are raised before any client is created. History is only
    appended once the reply has been read completely.
    """
    start = time.monotonic()
    if system_message is None:
        system_message = config.system_message

    window = build_messages(
        system_message=system_message,
        user_message=user_message,
        history=history.load(),
        model_name=config.token_model,
        max_tokens=config.max_tokens,
        max_response_tokens=config.max_response_tokens,
        counter=counter,
    )
    if window.dropped:
        logging.info(f"Dropped {window.dropped} history entries to fit the budget")

    payload = build_payload(config, window.messages)
    if client is None:
        client = CompletionClient(config)

    reader = StreamReader(config.token_model, on_delta=on_delta, counter=counter)
    if config.stream:
        with client.stream_lines(payload) as lines:
            result = reader.read(lines)
    else:
        reply = client.complete(payload)
        if reply and on_delta:
            on_delta(reply)
        reader.parts.append(reply)
        result = reader.result()

    history.extend(
        [HistoryEntry("user", user_message), HistoryEntry("assistant", result.reply)],
        config.token_model,
    )

    return CompletionResult(
        reply=result.reply,
        user_tokens=window.user_tokens,
        system_tokens=window.system_tokens,
        history_tokens=window.history_tokens,
        response_tokens=result.response_tokens,
        elapsed=time.monotonic() - start,
        finish_reason=result.finish_reason,
        dropped=window.dropped,
    )

"""Builds the request payload and trims history to fit the token budget."""

from dataclasses import dataclass, field

from terminalgpt.errors import BudgetExceeded
from terminalgpt.history import HistoryEntry
from terminalgpt.tokens import TokenCounter, count_tokens


@dataclass
class WindowedRequest:
    """The messages to send plus the token accounting behind them."""

    messages: list[dict]
    user_tokens: int
    system_tokens: int
    history_tokens: int
    budget: int
    included: list[HistoryEntry] = field(default_factory=list)
    dropped: int = 0

    @property
    def prompt_tokens(self) -> int:
        return self.user_tokens + self.system_tokens + self.history_tokens


def build_messages(
    system_message: str,
    user_message: str,
    history: list[HistoryEntry],
    model_name: str,
    max_tokens: int,
    max_response_tokens: int,
    counter: TokenCounter = count_tokens,
) -> WindowedRequest:
    """
    Assembles [system] + newest history that fits + [user].

    History is walked from newest to oldest and the walk stops at the first
    entry that would overflow the budget, so older turns drop off first and
    the kept window is always a contiguous suffix.
    """
    budget = max_tokens - max_response_tokens
    user_tokens = counter(user_message, model_name)
    system_tokens = counter(system_message, model_name)
    if user_tokens + system_tokens > budget:
        raise BudgetExceeded(user_tokens + system_tokens, budget)

    running = user_tokens + system_tokens
    selected: list[HistoryEntry] = []
    for entry in reversed(history):
        tokens = entry.token_count
        if tokens is None:
            tokens = counter(entry.content, model_name)
        if running + tokens > budget:
            break
        running += tokens
        selected.append(entry)
    selected.reverse()

    messages = [{"role": "system", "content": system_message}]
    messages.extend({"role": e.role, "content": e.content} for e in selected)
    messages.append({"role": "user", "content": user_message})

    return WindowedRequest(
        messages=messages,
        user_tokens=user_tokens,
        system_tokens=system_tokens,
        history_tokens=running - user_tokens - system_tokens,
        budget=budget,
        included=selected,
        dropped=len(history) - len(selected),
    )


def build_payload(config, messages: list[dict]) -> dict:
    """Wire payload for a chat completion request."""
    return {
        "model": config.model,
        "messages": messages,
        "temperature": config.temperature,
        "max_tokens": config.max_response_tokens,
        "top_p": config.top_p,
        "frequency_penalty": config.frequency_penalty,
        "presence_penalty": config.presence_penalty,
        "stream": config.stream,
    }

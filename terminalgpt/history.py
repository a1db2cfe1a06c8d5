"""Conversation history I/O. The history file is a single JSON array."""

import json
import logging
import os
from dataclasses import dataclass, replace
from typing import Literal

from terminalgpt.tokens import TokenCounter, count_tokens

Role = Literal["system", "user", "assistant"]
ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class HistoryEntry:
    role: Role
    content: str
    token_count: int | None = None

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content, "tokenCount": self.token_count}

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        if not isinstance(data, dict):
            raise ValueError(f"History entry must be an object, got {type(data).__name__}")
        role = data.get("role")
        if role not in ROLES:
            raise ValueError(f"Unknown history role: {role!r}")
        content = data.get("content")
        if not isinstance(content, str):
            raise ValueError("History entry content must be a string")
        token_count = data.get("tokenCount")
        if token_count is not None and not isinstance(token_count, int):
            raise ValueError("History entry tokenCount must be an integer")
        return cls(role=role, content=content, token_count=token_count)


class HistoryStore:
    """
    Append-only conversation log persisted to a single file.

    No locking is performed: one process per history file.
    """

    def __init__(self, path: str, counter: TokenCounter = count_tokens):
        self.path = path
        self.counter = counter

    def load(self) -> list[HistoryEntry]:
        """Loads the history. A missing file is an empty history."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            logging.error(f"Corrupt history file {self.path}, starting fresh: {e}")
            return []
        if not isinstance(data, list):
            logging.error(f"History file {self.path} is not a JSON array, starting fresh")
            return []
        try:
            return [HistoryEntry.from_dict(item) for item in data]
        except ValueError as e:
            logging.error(f"Invalid entry in history file {self.path}, starting fresh: {e}")
            return []

    def append(self, entry: HistoryEntry, model_name: str) -> HistoryEntry:
        """
        Counts the entry's tokens, then rewrites the whole file with the entry appended.

        Returns the stored entry (with token_count populated).
        """
        return self.extend([entry], model_name)[0]

    def extend(self, new_entries: list[HistoryEntry], model_name: str) -> list[HistoryEntry]:
        """Appends several entries with a single rewrite of the file."""
        counted = [
            replace(e, token_count=self.counter(e.content, model_name)) for e in new_entries
        ]
        entries = self.load()
        entries.extend(counted)
        self._write(entries)
        return counted

    def clear(self) -> bool:
        """Deletes the history file. Returns False if there was nothing to delete."""
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return False
        return True

    def total_tokens(self) -> int:
        return sum(e.token_count or 0 for e in self.load())

    def _write(self, entries: list[HistoryEntry]):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([e.to_dict() for e in entries], f, indent=2)

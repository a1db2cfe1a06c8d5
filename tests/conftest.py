"""Shared fixtures. Token counting is faked so tests never download tiktoken data."""

import pytest

from terminalgpt.config import Config
from terminalgpt.history import HistoryStore


def char_counter(text: str, model_name: str) -> int:
    """One token per character."""
    return len(text)


def word_counter(text: str, model_name: str) -> int:
    """One token per whitespace separated word."""
    return len(text.split())


@pytest.fixture
def config(tmp_path):
    cfg = Config(str(tmp_path / "config.json"))
    cfg.authorization_key = "sk-test-1234"
    cfg.max_tokens = 100
    cfg.max_response_tokens = 20
    cfg.system_message = "sys"
    return cfg


@pytest.fixture
def history(tmp_path):
    return HistoryStore(str(tmp_path / "history.json"), counter=char_counter)

"""Model-aware token counting (uses tiktoken)."""

from functools import lru_cache
from typing import Callable

import tiktoken

from terminalgpt.errors import EncodingUnavailable

# (text, model_name) -> token count
TokenCounter = Callable[[str, str], int]


@lru_cache(maxsize=None)
def _encoding_for(model_name: str) -> tiktoken.Encoding:
    """Looks up, and caches, the tokenizer used by a model."""
    try:
        return tiktoken.encoding_for_model(model_name)
    except KeyError:
        raise EncodingUnavailable(model_name) from None


def count_tokens(text: str, model_name: str) -> int:
    """Returns the number of tokens in text for the given model"""
    encoder = _encoding_for(model_name)
    if not text:
        return 0
    return len(encoder.encode(text, disallowed_special=()))

"""Exceptions raised by TerminalGPT."""


class TerminalGPTError(Exception):
    """Base class for all TerminalGPT errors"""


class EncodingUnavailable(TerminalGPTError):
    """No tokenizer is known for the requested model."""

    def __init__(self, model_name: str):
        super().__init__(f"No token encoding available for model '{model_name}'")
        self.model_name = model_name


class BudgetExceeded(TerminalGPTError):
    """The system and user messages alone do not fit in the request budget."""

    def __init__(self, required: int, budget: int):
        super().__init__(
            f"Message needs {required} tokens but only {budget} are available "
            "(max_tokens - max_response_tokens)"
        )
        self.required = required
        self.budget = budget


class StreamDecodeError(TerminalGPTError):
    """A line of the completion stream could not be decoded."""

    def __init__(self, line: str, reason: str):
        super().__init__(f"Could not decode stream event ({reason}): {line!r}")
        self.line = line

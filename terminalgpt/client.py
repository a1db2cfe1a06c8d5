"""Completion API client for OpenAI-compatible and Azure endpoints."""

from contextlib import contextmanager
from typing import Iterator

from openai import AzureOpenAI, OpenAI

from terminalgpt.config import Config
from terminalgpt.errors import TerminalGPTError
from terminalgpt.globals import retrieve_key


class CompletionClient:
    """Sends chat completion requests. Nothing is retried."""

    def __init__(self, config: Config):
        api_key = retrieve_key(config.authorization_key)
        if not api_key:
            raise TerminalGPTError(
                "No API key found. Set one with --config or OPENAI_API_KEY."
            )
        if config.provider == "azure":
            if not config.azure_endpoint:
                raise TerminalGPTError("Azure provider selected but no endpoint is set.")
            self.client = AzureOpenAI(
                azure_endpoint=config.azure_endpoint,
                api_key=api_key,
                api_version=config.azure_api_version,
                max_retries=0,
            )
        elif config.provider == "openai":
            self.client = OpenAI(
                base_url=config.api_base_url, api_key=api_key, max_retries=0
            )
        else:
            raise TerminalGPTError(f"Unknown provider: '{config.provider}'")

    @contextmanager
    def stream_lines(self, payload: dict) -> Iterator[Iterator[str]]:
        """POSTs the payload and yields the raw lines of the event stream."""
        with self.client.chat.completions.with_streaming_response.create(
            **payload
        ) as response:
            yield response.iter_lines()

    def complete(self, payload: dict) -> str:
        """Non-streaming completion, used when streaming is switched off."""
        body = {**payload, "stream": False}
        response = self.client.chat.completions.create(**body)
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

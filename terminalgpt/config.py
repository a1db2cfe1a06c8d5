"""Handles all user-facing configuration."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Callable

DEFAULT_SYSTEM_MESSAGE = (
    "You are a useful assistant. Your output is streamed into a command line, "
    "so keep answers focused on coding and terminal questions."
)

PROVIDERS = ("openai", "azure")

# Azure deployment names are arbitrary, so they can't select a tokenizer
AZURE_TOKENIZER_MODEL = "gpt-4"


class Config:
    """User-facing configuration variables"""

    def __init__(self, path: str):
        self._path = path
        # API endpoint
        self.provider: str = "openai"
        self.api_base_url: str = "https://api.openai.com/v1"
        self.azure_endpoint: str = ""
        self.azure_api_version: str = "2024-02-01"
        self.authorization_key: str = ""
        # Sampling
        self.model: str = "gpt-4"
        self.tokenizer_model: str = ""
        self.temperature: float = 0.5
        self.top_p: float = 1.0
        self.frequency_penalty: float = 0.0
        self.presence_penalty: float = 0.0
        # Token budgets
        self.max_tokens: int = 8192
        self.max_response_tokens: int = 2000
        # Display
        self.stream: bool = True
        self.print_stats: bool = True
        self.system_message: str = DEFAULT_SYSTEM_MESSAGE
        self.last_user_message: str = ""

    @property
    def path(self) -> str:
        return self._path

    @property
    def token_model(self) -> str:
        """Model name used for token counting. A blank tokenizer_model follows the model."""
        if self.tokenizer_model:
            return self.tokenizer_model
        if self.provider == "azure":
            return AZURE_TOKENIZER_MODEL
        return self.model

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    def save(self):
        """Saves the config via a temp file and an atomic rename."""
        directory = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def load(self):
        """
        Loads the config file.

        A missing or unreadable file is replaced with the current (default) values.
        Single values of the wrong type or out of range are logged and skipped.
        """
        if not os.path.exists(self._path):
            self.save()
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be a JSON object")
        except (json.JSONDecodeError, ValueError) as e:
            logging.error(f"Corrupt config file {self._path}, using defaults: {e}")
            self.save()
            return
        known = self.to_dict()
        schema = {s.field: s for s in SETTINGS}
        for key, val in data.items():
            if key not in known:
                continue
            try:
                setattr(self, key, checked_value(schema.get(key), known[key], val))
            except ValueError as e:
                logging.warning(f"Ignoring config value {key}={val!r} in {self._path}: {e}")
        if self.max_response_tokens >= self.max_tokens:
            logging.warning(
                f"max_response_tokens ({self.max_response_tokens}) must be below "
                f"max_tokens ({self.max_tokens}), keeping the default budgets"
            )
            self.max_tokens = known["max_tokens"]
            self.max_response_tokens = known["max_response_tokens"]

    def masked_key(self) -> str:
        if len(self.authorization_key) >= 4:
            return f"****{self.authorization_key[-4:]}"
        return "(missing)"


# <~~SETTINGS SCHEMA~~>
@dataclass(frozen=True)
class Setting:
    field: str
    label: str
    parser: Callable[[str], Any]
    validator: Callable[[Any], bool] = lambda value: True
    hint: str = ""
    secret: bool = False


def parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("true", "t", "yes", "y", "1", "on"):
        return True
    if value in ("false", "f", "no", "n", "0", "off"):
        return False
    raise ValueError(f"'{raw}' is not a boolean")


def parse_text(raw: str) -> str:
    return raw.strip()


SETTINGS: list[Setting] = [
    Setting("provider", "Provider", parse_text, lambda v: v in PROVIDERS, "openai or azure"),
    Setting("model", "Model", parse_text, bool, "must not be empty"),
    Setting("temperature", "Temperature", float, lambda v: 0.0 <= v <= 2.0, "0.0 - 2.0"),
    Setting("max_tokens", "Max total tokens", int, lambda v: v > 0, "positive number"),
    Setting(
        "max_response_tokens",
        "Max response tokens",
        int,
        lambda v: v > 0,
        "positive number",
    ),
    Setting("top_p", "Top P", float, lambda v: 0.0 <= v <= 1.0, "0.0 - 1.0"),
    Setting(
        "frequency_penalty",
        "Frequency penalty",
        float,
        lambda v: -2.0 <= v <= 2.0,
        "-2.0 - 2.0",
    ),
    Setting(
        "presence_penalty",
        "Presence penalty",
        float,
        lambda v: -2.0 <= v <= 2.0,
        "-2.0 - 2.0",
    ),
    Setting("stream", "Stream", parse_bool, hint="true/false"),
    Setting("print_stats", "Print stats", parse_bool, hint="true/false"),
    Setting("system_message", "System message", parse_text),
    Setting("api_base_url", "API base URL", parse_text, bool, "must not be empty"),
    Setting("azure_endpoint", "Azure endpoint", parse_text),
    Setting("azure_api_version", "Azure API version", parse_text, bool),
    Setting(
        "tokenizer_model",
        "Tokenizer model",
        parse_text,
        hint="blank uses the model name, or gpt-4 for azure",
    ),
    Setting(
        "authorization_key",
        "Authorization key",
        parse_text,
        bool,
        "must not be empty",
        secret=True,
    ),
]


def apply_setting(config: Config, setting: Setting, raw: str) -> Any:
    """Parses, validates and assigns a single setting. Raises ValueError on bad input."""
    try:
        value = setting.parser(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {setting.label.lower()} value: {e}") from None
    if not setting.validator(value):
        hint = f" ({setting.hint})" if setting.hint else ""
        raise ValueError(f"Invalid {setting.label.lower()} value{hint}")
    if setting.field == "max_response_tokens" and value >= config.max_tokens:
        raise ValueError("Max response tokens must be below max total tokens")
    if setting.field == "max_tokens" and value <= config.max_response_tokens:
        raise ValueError("Max total tokens must exceed max response tokens")
    setattr(config, setting.field, value)
    return value


def checked_value(setting: Setting | None, default: Any, value: Any) -> Any:
    """Checks a value read from the config file against its default's type and the setting's validator."""
    expected = type(default)
    if expected is float and type(value) is int:
        value = float(value)
    if type(value) is not expected:
        raise ValueError(f"expected {expected.__name__}, got {type(value).__name__}")
    if setting and not setting.validator(value):
        hint = f" ({setting.hint})" if setting.hint else ""
        raise ValueError(f"out of range{hint}")
    return value


def display_value(config: Config, setting: Setting) -> str:
    if setting.secret:
        return config.masked_key()
    return str(getattr(config, setting.field))

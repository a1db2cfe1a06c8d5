"""
Command handling tests.

prompt_toolkit's prompt() is patched so the interactive menus can be driven
with scripted input, and the panels print to an in-memory console.
"""

import io
import json
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from terminalgpt.cli_controller import CLIController
from terminalgpt.completion import CompletionResult
from terminalgpt.errors import BudgetExceeded, StreamDecodeError
from terminalgpt.history import HistoryEntry
from terminalgpt.run_modes import resolve_mode
from terminalgpt.tokens import _encoding_for
from terminalgpt.ui import GlobalPanels, UIConstructor


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def controller(config, history, output):
    ui = UIConstructor(config)
    panel = GlobalPanels(ui, console=Console(file=output, width=120))
    return CLIController(config, history, ui, panel, resolve_mode("default"))


def fake_result(reply="done"):
    return CompletionResult(
        reply=reply,
        user_tokens=1,
        system_tokens=2,
        history_tokens=3,
        response_tokens=4,
        elapsed=0.5,
        finish_reason="stop",
    )


# 1. Command dispatch


def test_unknown_input_is_not_a_command(controller):
    assert controller.handle_input("hello there") is False


def test_quit_exits(controller):
    with pytest.raises(SystemExit):
        controller.handle_input("!q")


def test_clear_command(controller, history):
    history.append(HistoryEntry("user", "hi"), "gpt-4")
    assert controller.handle_input("!clear") is True
    assert history.load() == []
    # Clearing twice is harmless
    assert controller.handle_input("!CLEAR") is True


def test_help_chart_lists_run_modes(controller, output):
    controller.handle_input("!help")
    text = output.getvalue()
    assert "!config" in text
    assert "shell" in text


# 2. Chat turns


@patch("terminalgpt.cli_controller.ResponseRenderer")
@patch("terminalgpt.cli_controller.generate_completion")
def test_send_saves_last_message_and_prints_stats(mock_generate, mock_renderer, controller, config, output):
    mock_generate.return_value = fake_result()

    result = controller.send("what time is it?")

    assert result.reply == "done"
    assert config.last_user_message == "what time is it?"
    assert "10" in output.getvalue()  # total tokens in the stats panel
    kwargs = mock_generate.call_args.kwargs
    assert kwargs["system_message"] == config.system_message


@patch("terminalgpt.cli_controller.ResponseRenderer")
@patch("terminalgpt.cli_controller.generate_completion")
def test_send_uses_run_mode_system_message(mock_generate, mock_renderer, controller):
    mock_generate.return_value = fake_result()
    controller.mode = resolve_mode("shell")

    controller.send("list files")

    assert mock_generate.call_args.kwargs["system_message"] == resolve_mode("shell").system_message


@patch("terminalgpt.cli_controller.ResponseRenderer")
@patch("terminalgpt.cli_controller.generate_completion")
def test_send_reports_budget_errors(mock_generate, mock_renderer, controller, output):
    mock_generate.side_effect = BudgetExceeded(120, 80)

    assert controller.send("too long") is None
    assert "REQUEST REJECTED" in output.getvalue()


@patch("terminalgpt.cli_controller.log_exception")
@patch("terminalgpt.cli_controller.ResponseRenderer")
@patch("terminalgpt.cli_controller.generate_completion")
def test_send_reports_stream_errors(mock_generate, mock_renderer, mock_log, controller, output):
    mock_generate.side_effect = StreamDecodeError("data: {", "bad json")

    assert controller.send("hi") is None
    assert "API ERROR" in output.getvalue()
    mock_log.assert_called_once()


@patch("terminalgpt.cli_controller.ResponseRenderer")
@patch("terminalgpt.cli_controller.generate_completion")
def test_resend_last(mock_generate, mock_renderer, controller, config):
    mock_generate.return_value = fake_result()
    config.last_user_message = "again please"

    controller.handle_input("!last")

    assert mock_generate.call_args.args[1] == "again please"


@patch("terminalgpt.cli_controller.generate_completion")
def test_resend_last_without_previous_message(mock_generate, controller):
    controller.handle_input("!last")
    mock_generate.assert_not_called()


# 3. Interactive menus


@patch("terminalgpt.cli_controller.prompt")
def test_configure_updates_and_saves(mock_prompt, controller, config):
    # Option 2 is the model name
    mock_prompt.side_effect = ["2", "gpt-4o-mini", "e"]

    controller.configure()

    assert config.model == "gpt-4o-mini"
    reloaded = type(config)(config.path)
    reloaded.load()
    assert reloaded.model == "gpt-4o-mini"


@patch("terminalgpt.cli_controller.prompt")
def test_configure_rejects_invalid_input(mock_prompt, controller, config, output):
    # Bad option, then a bad temperature, then exit
    mock_prompt.side_effect = ["42", "abc", "3", "scorching", "e"]

    controller.configure()

    assert config.temperature == 0.5
    assert "VALUE ERROR" in output.getvalue()


@patch("terminalgpt.cli_controller.prompt")
def test_configure_exits_on_ctrl_c(mock_prompt, controller):
    mock_prompt.side_effect = KeyboardInterrupt
    controller.configure()


@patch("terminalgpt.cli_controller.prompt")
def test_switch_mode(mock_prompt, controller):
    mock_prompt.return_value = "code"
    controller.handle_input("!mode")
    assert controller.mode.name == "code"


@patch("terminalgpt.cli_controller.prompt")
def test_switch_mode_unknown_keeps_current(mock_prompt, controller):
    mock_prompt.return_value = "poetry"
    controller.handle_input("!mode")
    assert controller.mode.name == "default"


# 4. Hand-edited config


@patch("terminalgpt.cli_controller.ResponseRenderer")
def test_mistyped_config_value_does_not_break_a_turn(mock_renderer, controller, config, output):
    with open(config.path, "w", encoding="utf-8") as f:
        json.dump({"max_tokens": "8192"}, f)
    config.load()

    client = MagicMock()
    client.stream_lines.return_value.__enter__.return_value = iter(
        ['data: {"choices": [{"index": 0, "delta": {"content": "fine"}, "finish_reason": "stop"}]}']
    )
    controller.client = client
    encoder = MagicMock()
    encoder.encode.side_effect = lambda text, disallowed_special=(): list(text)

    _encoding_for.cache_clear()
    try:
        with patch("terminalgpt.tokens.tiktoken.encoding_for_model", return_value=encoder):
            result = controller.send("hello")
    finally:
        _encoding_for.cache_clear()

    assert config.max_tokens == 100
    assert result is not None
    assert result.reply == "fine"
    assert "ERROR" not in output.getvalue()

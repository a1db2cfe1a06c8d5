"""Command interactivity logic lives here."""

import sys

import httpx
from openai import OpenAIError
from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.formatted_text import HTML

from terminalgpt.completion import CompletionResult, generate_completion
from terminalgpt.config import SETTINGS, Config, apply_setting
from terminalgpt.errors import BudgetExceeded, TerminalGPTError
from terminalgpt.globals import COMPLETER_STYLER, CONSOLE, log_exception
from terminalgpt.history import HistoryStore
from terminalgpt.run_modes import RUN_MODES, RunMode, resolve_mode, system_message_for
from terminalgpt.ui import GlobalPanels, ResponseRenderer, UIConstructor

# Errors that abandon the current turn but keep the application running
TURN_ERRORS = (TerminalGPTError, OpenAIError, httpx.HTTPError, OSError)


class CLIController:
    """Handles and supports all command input"""

    def __init__(
        self,
        config: Config,
        history: HistoryStore,
        ui: UIConstructor,
        panel: GlobalPanels,
        mode: RunMode,
        client=None,
    ):
        self.config = config
        self.history = history
        self.ui = ui
        self.panel = panel
        self.mode = mode
        self.client = client

        # Command dict
        self.commands = {
            "!h": self.panel.spawn_help_chart,
            "!help": self.panel.spawn_help_chart,
            "!config": self.configure,
            "!settings": self.panel.spawn_settings_chart,
            "!clear": self.clear_history,
            "!history": self.show_history,
            "!mode": self.switch_mode,
            "!last": self.resend_last,
            "!q": sys.exit,
            "!quit": sys.exit,
        }

    # <~~HELPERS~~>
    def _prompt_wrapper(
        self, prefix, cancel_msg="Canceled.", allow_empty=False, **kwargs
    ) -> str | None:
        """Prompt_toolkit wrapper for validating input."""
        try:
            user_input = prompt(prefix, **kwargs)
            stripped = user_input.strip()
            if not stripped and not allow_empty:
                CONSOLE.print("[dim]No input detected.[/dim]\n")
                return None
            return stripped
        except (KeyboardInterrupt, EOFError):
            CONSOLE.print(f"[dim]{cancel_msg}[/dim]\n")
            return None

    def handle_input(self, user_input: str) -> bool:
        """Parse user input for a command & handle it. Returns False if no command was found."""
        cmd = user_input.strip().lower()
        if cmd not in self.commands:
            return False
        if cmd in ("!q", "!quit"):
            CONSOLE.print("[yellow]✨ Farewell![/yellow]\n")
        self.commands[cmd]()
        return True

    # <~~CHAT~~>
    def send(self, user_message: str) -> CompletionResult | None:
        """Runs one chat turn. Errors are reported and the turn is abandoned."""
        self.config.last_user_message = user_message
        try:
            self.config.save()
        except OSError as e:
            log_exception(e, "Error saving last user message")

        try:
            with ResponseRenderer(self.ui, console=self.panel.console) as renderer:
                result = generate_completion(
                    self.config,
                    user_message,
                    self.history,
                    system_message=system_message_for(self.mode, self.config),
                    client=self.client,
                    on_delta=renderer.on_delta,
                )
        except BudgetExceeded as e:
            self.panel.spawn_error_panel("REQUEST REJECTED", f"{e}")
            return None
        except TURN_ERRORS as e:
            log_exception(e, "Error in send()")
            self.panel.spawn_error_panel("API ERROR", f"{e}")
            return None

        if result.finish_reason and result.finish_reason != "stop":
            CONSOLE.print(
                f"[yellow]Generation stopped early:[/yellow] {result.finish_reason}"
            )
        if self.config.print_stats:
            self.panel.spawn_stats_panel(result)
        return result

    def resend_last(self):
        """Sends the previous user message again."""
        if not self.config.last_user_message:
            CONSOLE.print("[dim]No previous message found.[/dim]\n")
            return
        self.panel.spawn_user_panel(self.config.last_user_message)
        self.send(self.config.last_user_message)

    # <~~HISTORY~~>
    def clear_history(self):
        """Deletes the conversation history file."""
        if self.history.clear():
            CONSOLE.print("[green]Conversation history cleared.[/green]\n")
        else:
            CONSOLE.print("[dim]No conversation history to clear.[/dim]\n")

    def show_history(self):
        """Prints a short summary of the stored history."""
        entries = self.history.load()
        if not entries:
            CONSOLE.print("[dim]No conversation history found.[/dim]\n")
            return
        turns = sum(1 for e in entries if e.role == "user")
        tokens = sum(e.token_count or 0 for e in entries)
        CONSOLE.print(
            f"[cyan]History:[/cyan] {len(entries)} entries, {turns} turns, "
            f"{tokens} tokens [dim]({self.history.path})[/dim]\n"
        )

    # <~~RUN MODES~~>
    def switch_mode(self):
        """Switch the active run mode."""
        CONSOLE.print("[cyan]Run modes:[/cyan]")
        for m in RUN_MODES.values():
            tag = "(active)" if m.name == self.mode.name else ""
            CONSOLE.print(f"• {m.name} → {m.description} {tag}")
        CONSOLE.print()
        name = self._prompt_wrapper(
            HTML("Enter a run mode<seagreen>:</seagreen> "),
            completer=WordCompleter(list(RUN_MODES)),
            style=COMPLETER_STYLER,
        )
        if not name:
            return
        try:
            self.mode = resolve_mode(name)
        except TerminalGPTError as e:
            CONSOLE.print(f"[red]{e}[/red]\n")
            return
        CONSOLE.print(f"[green]Run mode set to:[/green] {self.mode.name}\n")

    # <~~CONFIGURATION~~>
    def configure(self):
        """Interactive settings menu. Every change is saved immediately."""
        while True:
            self.panel.spawn_settings_chart()
            choice = self._prompt_wrapper(
                HTML(
                    "Enter a setting number, or <seagreen>e</seagreen> to exit<seagreen>:</seagreen> "
                ),
                cancel_msg="Configuration closed.",
            )
            if choice is None or choice.lower() == "e":
                return
            index = int(choice) - 1 if choice.isdigit() else -1
            if not 0 <= index < len(SETTINGS):
                CONSOLE.print(
                    f"[red]Invalid option.[/red] [dim]Enter a number between 1 and {len(SETTINGS)}, or 'e'.[/dim]\n"
                )
                continue
            setting = SETTINGS[index]

            hint = f" [dim]({setting.hint})[/dim]" if setting.hint else ""
            CONSOLE.print(f"[cyan]{setting.label}[/cyan]{hint}")
            raw = self._prompt_wrapper(
                HTML("New value<seagreen>:</seagreen> "),
                allow_empty=setting.field == "system_message",
                is_password=setting.secret,
            )
            if raw is None:
                continue
            try:
                apply_setting(self.config, setting, raw)
            except ValueError as e:
                self.panel.spawn_error_panel("VALUE ERROR", f"{e}")
                continue
            self.config.save()
            # Provider or credentials may have changed
            self.client = None
            CONSOLE.print(f"[green]{setting.label} updated.[/green]\n")

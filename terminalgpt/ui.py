"""Builds and spawns UI objects. UIConstructor, GlobalPanels and ResponseRenderer live here."""

import textwrap

from rich import box
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from terminalgpt import __version__
from terminalgpt.config import SETTINGS, Config, display_value
from terminalgpt.globals import CONSOLE, LOG_DIR
from terminalgpt.run_modes import RUN_MODES


class UIConstructor:
    """Constructs and returns various UI objects"""

    def __init__(self, config: Config):
        self.config = config

    def response_panel_constructor(self, content: str) -> Panel:
        return Panel(
            Markdown(content),
            title=Text("💬 Response", style="bold green"),
            title_align="left",
            border_style="green",
            style="default",
            width=None,
            box=box.HORIZONTALS,
            padding=(0, 0),
        )

    def user_panel_constructor(self, content: str) -> Panel:
        return Panel(
            content,
            box=box.HORIZONTALS,
            padding=(0, 0),
            title=Text("🌐 You", style="bold blue"),
            title_align="left",
            border_style="blue",
            style="default",
        )

    def stats_panel_constructor(self, result) -> Panel:
        stats = Text.assemble(
            ("🪙 ", "cyan"),
            (f"{result.total_tokens}"),
            (f" (👤 {result.prompt_tokens} | 💻 {result.response_tokens})"),
            (f" ⏰ {result.elapsed:.1f}s"),
        )
        if result.dropped:
            stats.append(f" | {result.dropped} old turns dropped", style="yellow")
        return Panel(stats, border_style="dim", style="dim", expand=False)

    def intro_panel_constructor(self, mode_name: str) -> Panel:
        intro_text = Text.assemble(
            ("Model: ", "bold sandy_brown"),
            (f"{self.config.model}"),
            ("\nProvider: ", "bold sandy_brown"),
            (f"{self.config.provider}"),
            ("\nRun Mode: ", "bold sandy_brown"),
            (f"{mode_name}"),
            ("\nToken Budget: ", "bold sandy_brown"),
            (f"{self.config.max_tokens} ({self.config.max_response_tokens} for replies)"),
        )
        return Panel(
            intro_text,
            title=Text(f"🔮 TerminalGPT {__version__}", "bold medium_orchid"),
            title_align="left",
            border_style="medium_orchid",
            box=box.HORIZONTALS,
            padding=(0, 0),
        )

    def error_panel_constructor(self, error: str, exception: str) -> Panel:
        return Panel(
            exception,
            title=Text(f"❌ {error}", style="bold red"),
            title_align="left",
            border_style="red",
            expand=False,
        )

    def help_chart_constructor(self) -> Markdown:
        modes = "\n".join(
            f"            | `{m.name}` | {m.description} |" for m in RUN_MODES.values()
        )
        return Markdown(
            textwrap.dedent(f"""
            | **Commands** | *Type a message to chat, or use one of these* |
            | --- | ----------- |
            | `!h` or `!help` | Show this chart. |
            | `!config` | Change settings interactively. Changes are saved immediately. |
            | `!settings` | Display the current settings. |
            | `!history` | Show how much conversation history is stored. |
            | `!clear` | Clear the conversation history. |
            | `!mode` | Switch the run mode. |
            | `!last` | Send your previous message again. |
            | `!q` or `!quit` | Exit TerminalGPT. |

            | **Run Modes** | *Presets that replace the system message* |
            | --- | ----------- |
{modes}
            """)
        )

    def settings_chart_constructor(self) -> Markdown:
        rows = "\n".join(
            f"            | {i}. **{s.label}** | *{display_value(self.config, s)}* |"
            for i, s in enumerate(SETTINGS, start=1)
        )
        return Markdown(
            textwrap.dedent(f"""
            | **Current Settings** | *Your current persistent settings* |
            | --- | ----------- |
{rows}

            - Your configuration file is located at: `{self.config.path}`
            - Your error logs are located at:        `{LOG_DIR}`
            """)
        )


class GlobalPanels:
    """Global panel spawner"""

    def __init__(self, ui: UIConstructor, console: Console = CONSOLE):
        self.ui: UIConstructor = ui
        self.console = console

    def spawn_intro_panel(self, mode_name: str):
        """Simple welcome panel, prints on application launch."""
        self.console.print(self.ui.intro_panel_constructor(mode_name))
        self.console.print(Markdown("Type `!h` for a list of commands."))
        self.console.print()

    def spawn_stats_panel(self, result):
        """Prints token usage for the finished turn."""
        self.console.print(self.ui.stats_panel_constructor(result))
        self.console.print()

    def spawn_error_panel(self, error: str, exception: str):
        """Error panel template for TerminalGPT, used by the controller and main()"""
        self.console.print(self.ui.error_panel_constructor(error, exception))
        self.console.print()

    def spawn_user_panel(self, content: str):
        self.console.print()
        self.console.print(self.ui.user_panel_constructor(content))
        self.console.print()

    def spawn_help_chart(self):
        self.console.print(self.ui.help_chart_constructor())
        self.console.print()

    def spawn_settings_chart(self):
        self.console.print(self.ui.settings_chart_constructor())
        self.console.print()


class ResponseRenderer:
    """
    Live-renders a reply while it streams in.

    Used as a context manager; on_delta is handed to the StreamReader.
    The live panel only appears once the first delta arrives.
    """

    def __init__(self, ui: UIConstructor, console: Console = CONSOLE, refresh_rate: int = 12):
        self.ui = ui
        self.console = console
        self.refresh_rate = refresh_rate
        self.parts: list[str] = []
        self.live: Live | None = None

    def __enter__(self) -> "ResponseRenderer":
        self.parts = []
        self.live = None
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.live:
            self.live.stop()
            self.live = None
        return False

    def on_delta(self, text: str):
        self.parts.append(text)
        panel = self.ui.response_panel_constructor("".join(self.parts))
        if self.live is None:
            self.live = Live(panel, console=self.console, refresh_per_second=self.refresh_rate)
            self.live.start()
        else:
            self.live.update(panel)

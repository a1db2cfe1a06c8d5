#!/usr/bin/env python3

# <~~~~~~~~~~~>
#  TERMINALGPT
# <~~~~~~~~~~~>

import argparse
import sys

from terminalgpt import __version__
from terminalgpt.cli_controller import CLIController
from terminalgpt.config import Config
from terminalgpt.errors import TerminalGPTError
from terminalgpt.globals import (
    CONFIG_FILE,
    CONSOLE,
    HISTORY_FILE,
    init_dirs,
    init_logger,
    log_exception,
    root_prompt,
    setup_keyring_backend,
)
from terminalgpt.history import HistoryStore
from terminalgpt.run_modes import RUN_MODES, resolve_mode
from terminalgpt.ui import GlobalPanels, UIConstructor


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="terminalgpt",
        description="Chat with an OpenAI-compatible model from your terminal.",
    )
    parser.add_argument(
        "message",
        nargs="*",
        help="Send a single message and exit (combine with --loop to keep chatting)",
    )
    parser.add_argument(
        "--config", action="store_true", help="Configure settings interactively"
    )
    parser.add_argument(
        "--clear", action="store_true", help="Clear the conversation history"
    )
    parser.add_argument(
        "--mode",
        default="default",
        help=f"Run mode preset ({', '.join(RUN_MODES)})",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep prompting after a message given on the command line",
    )
    parser.add_argument("--config-file", default=CONFIG_FILE, help=argparse.SUPPRESS)
    parser.add_argument("--history-file", default=HISTORY_FILE, help=argparse.SUPPRESS)
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser.parse_args(argv)


def run(controller: CLIController, panel: GlobalPanels):
    """Main interactive loop."""
    panel.spawn_intro_panel(controller.mode.name)
    while True:
        try:
            user_message = root_prompt().strip()
        except (KeyboardInterrupt, EOFError):
            CONSOLE.print("[yellow]✨ Farewell![/yellow]\n")
            return
        if not user_message:
            continue
        if controller.handle_input(user_message):
            continue
        CONSOLE.print()
        controller.send(user_message)


# <~~MAIN FLOW~~>
def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    ui = None
    try:
        init_dirs()
        init_logger()
        setup_keyring_backend()

        config = Config(args.config_file)
        config.load()
        history = HistoryStore(args.history_file)
        ui = UIConstructor(config)
        panel = GlobalPanels(ui)
        controller = CLIController(config, history, ui, panel, resolve_mode(args.mode))

        if args.config:
            controller.configure()
        if args.clear:
            controller.clear_history()

        message = " ".join(args.message).strip()
        if message:
            result = controller.send(message)
            if not args.loop:
                return 0 if result is not None else 1
        elif args.clear and not args.loop:
            return 0

        run(controller, panel)
        return 0
    except (KeyboardInterrupt, EOFError):
        CONSOLE.print("[yellow]✨ Farewell![/yellow]\n")
        return 0
    except TerminalGPTError as e:
        CONSOLE.print(f"[red]{e}[/red]\n")
        return 1
    except Exception as e:
        log_exception(e, "Critical startup error")
        if ui:
            GlobalPanels(ui).spawn_error_panel("CRITICAL ERROR", f"{e}")
        else:
            CONSOLE.print(f"[red]CRITICAL ERROR:[/red] {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Global functions and variables, used across various modules."""

import getpass
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

import keyring
from keyring import get_password
from keyring.backends import null
from platformdirs import user_data_dir
from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.styles import Style
from rich.console import Console

# Default directories and system details
APP_DIR = user_data_dir("TerminalGPT")
LOG_DIR = os.path.join(APP_DIR, "logs")
CONFIG_FILE = os.path.join(APP_DIR, "config.json")
HISTORY_FILE = os.path.join(APP_DIR, "history.json")
USER_NAME = getpass.getuser()
KEYRING_SERVICE = "TerminalGPT"

# Terminal integration
CONSOLE = Console()

# Main prompt prefix
PROMPT_PREFIX = HTML("<seagreen>❯ </seagreen>")

# Dark style for all prompt_toolkit completers
COMPLETER_STYLER = Style.from_dict(
    {
        "completion-menu.completion": "bg:#202020 #ffffff",
        "completion-menu.completion.current": "bg:#024a1a #000000",
    }
)

# Main prompt command completer
COMMAND_COMPLETER = WordCompleter(
    [
        "!clear",
        "!config",
        "!h",
        "!help",
        "!history",
        "!last",
        "!mode",
        "!q",
        "!quit",
        "!settings",
    ],
    match_middle=True,
    WORD=True,
)

# In-memory history for the root prompt, must mutate
main_history = InMemoryHistory()


def init_dirs():
    """Creates the data and log directories."""
    os.makedirs(APP_DIR, exist_ok=True)
    os.makedirs(LOG_DIR, exist_ok=True)


def init_logger(level: int = logging.ERROR):
    """Initializes the logging system."""
    date_str = datetime.now().strftime("%Y%m%d")
    # Output example: terminalgpt_20251109.log
    log_path = os.path.join(LOG_DIR, f"terminalgpt_{date_str}.log")
    # Max of 3 backups, max size of 1MB
    handler = RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler],
    )


def log_exception(e: Exception, context: str = ""):
    """Creates a full formatted traceback string and writes it to a log file"""
    import traceback

    tb = "".join(traceback.format_exception(type(e), e, e.__traceback__))
    msg = f"{context}\n{tb}" if context else tb
    logging.error(msg)


def setup_keyring_backend():
    """Safely detects a keyring backend."""
    try:
        keyring.get_keyring()
    except Exception as e:
        keyring.set_keyring(null.Keyring())
        logging.error(
            f"Keyring backend failed. Falling back to NullBackend. Error: {e}"
        )


def retrieve_key(config_key: str = "") -> str:
    """
    Resolves the API key used for the bearer authorization header.\n
    Prio: config file -> OPENAI_API_KEY env variable -> OS keyring entry
    """
    if config_key:
        return config_key
    api_key = os.getenv("OPENAI_API_KEY", "")
    if not api_key:
        try:
            api_key = get_password(KEYRING_SERVICE, USER_NAME) or ""
        except Exception as e:
            logging.warning(f"Keyring lookup failed: {e}")
    return api_key


def root_prompt() -> str:
    return prompt(
        PROMPT_PREFIX,
        completer=COMMAND_COMPLETER,
        style=COMPLETER_STYLER,
        complete_while_typing=False,
        history=main_history,
    )

"""Run modes: named presets that replace the configured system message."""

from dataclasses import dataclass

from terminalgpt.errors import TerminalGPTError


@dataclass(frozen=True)
class RunMode:
    name: str
    description: str
    # None keeps the system message from the config file
    system_message: str | None = None


RUN_MODES: dict[str, RunMode] = {
    mode.name: mode
    for mode in (
        RunMode("default", "Use the system message from the config file"),
        RunMode(
            "code",
            "Answer with code first, minimal prose",
            "You are a senior software engineer. Reply with working code in "
            "fenced Markdown blocks, followed by at most a few lines of explanation.",
        ),
        RunMode(
            "shell",
            "Reply with a single shell command",
            "You translate requests into shell commands. Reply with one command "
            "per line and nothing else unless the user asks for an explanation.",
        ),
        RunMode(
            "explain",
            "Explain concepts step by step",
            "You are a patient tutor. Explain the topic step by step, using short "
            "examples where they help.",
        ),
    )
}


def resolve_mode(name: str) -> RunMode:
    try:
        return RUN_MODES[name.lower()]
    except KeyError:
        available = ", ".join(RUN_MODES)
        raise TerminalGPTError(
            f"Unknown run mode '{name}'. Available modes: {available}"
        ) from None


def system_message_for(mode: RunMode, config) -> str:
    if mode.system_message is None:
        return config.system_message
    return mode.system_message

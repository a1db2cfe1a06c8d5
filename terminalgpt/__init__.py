"""TerminalGPT: a streaming chat client for the terminal."""

__version__ = "0.4.0"

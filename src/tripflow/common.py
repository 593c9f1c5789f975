"""Terminal colour helpers for the shell and the one-shot runner."""

import sys
from enum import Enum
from typing import Any

RESET = "\033[0m"


class AnsiColors(Enum):
    """Foreground colours used by the shell."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"


def colorize(text: str, color: AnsiColors) -> str:
    """Wrap *text* in *color*; plain text when stdout is not a terminal."""
    if not sys.stdout.isatty():
        return text
    return f"{color.value}{text}{RESET}"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    print(colorize(text, color), *args, **kwargs)

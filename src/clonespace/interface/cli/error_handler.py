"""CLI Error Handler.

Renders errors either as a rich, human-readable message with recovery hints
or as a JSON object for scripts, always on stderr, then exits with status 1.
"""

import json
import sys
from typing import NoReturn

from rich.console import Console
from rich.text import Text

from clonespace.foundation.errors import ClonespaceError, ErrorCode

_ICONS = {
    "pattern": "✱",
    "archive": "📦",
    "resolution": "🔍",
    "restore": "📁",
    "config": "⚙️",
}


def handle_error(
    error: ClonespaceError | Exception,
    json_output: bool = False,
) -> NoReturn:
    """Report ``error`` and exit.

    Args:
        error: The error to report; other exceptions are wrapped as
            restore failures so they still carry an error id.
        json_output: Emit ``error.to_dict()`` as JSON instead of rich text

    Raises:
        SystemExit: Always exits with code 1
    """
    if not isinstance(error, ClonespaceError):
        error = ClonespaceError(
            code=ErrorCode.RESTORE_FAILED,
            context={"destination": "workspace", "detail": str(error)},
            cause=error,
        )

    if json_output:
        error_dict = error.to_dict()
        if error.cause:
            error_dict["cause"] = str(error.cause)
        print(json.dumps(error_dict), file=sys.stderr)
        sys.exit(1)

    _print_human_error(error)
    sys.exit(1)


def _print_human_error(error: ClonespaceError) -> None:
    console = Console(stderr=True)

    header = Text()
    header.append(f"{_ICONS.get(error.category, '✗')} ", style="bold")
    header.append(error.error_id, style="bold red")
    header.append(f" {error.message}")
    console.print(header)

    hints = error.recovery_hints
    if hints:
        console.print("\n[bold]What you can do:[/]")
        for i, hint in enumerate(hints, 1):
            console.print(f"  {i}. {hint}")

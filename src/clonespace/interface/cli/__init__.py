"""clonespace CLI.

Only the entry points are exported; everything else should be imported directly.
"""

from clonespace.interface.cli.main import cli_entrypoint, main

__all__ = ["cli_entrypoint", "main"]

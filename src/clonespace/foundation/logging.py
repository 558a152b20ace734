"""Logging configuration for clonespace.

Provides centralized logging setup with sensible defaults:
- Default: WARNING level (quiet operation)
- --debug flag: DEBUG level with full context
- CLONESPACE_DEBUG=true or CLONESPACE_LOG_LEVEL=DEBUG env vars: Override for CI/scripting
- Config file: debug: true in .clonespace/config.yaml (persistent)
- Persistent logs: Stored in <home>/logs/ with session rotation

Usage:
    from clonespace.foundation.logging import configure_logging
    configure_logging(debug=args.debug, log_dir=config.home / "logs")

Priority for level resolution (highest to lowest):
    1. Explicit `level` parameter (programmatic override)
    2. CLONESPACE_LOG_LEVEL env var (any level: DEBUG, INFO, WARNING, etc.)
    3. CLONESPACE_DEBUG=true env var (simple boolean)
    4. `debug=True` parameter (--debug flag)
    5. `config_debug=True` parameter (debug: true in config file)
    6. WARNING (default)
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

# Format includes module path for tracing issues
_DEBUG_FORMAT = "%(asctime)s %(name)s [%(levelname)s] %(message)s"
_DEFAULT_FORMAT = "%(name)s: %(message)s"

# Session log retention
_MAX_LOG_SESSIONS = 10  # Keep last N session logs


def _cleanup_old_logs(log_dir: Path, max_sessions: int = _MAX_LOG_SESSIONS) -> None:
    """Remove old session logs, keeping only the most recent N.

    Args:
        log_dir: Directory containing log files
        max_sessions: Maximum number of session logs to retain
    """
    if not log_dir.exists():
        return

    log_files = sorted(
        log_dir.glob("session_*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,  # Newest first
    )

    for old_log in log_files[max_sessions:]:
        try:
            old_log.unlink()
        except OSError:
            continue


def configure_logging(
    *,
    debug: bool = False,
    config_debug: bool = False,
    level: int | str | None = None,
    stream: object = None,
    log_dir: Path | None = None,
) -> int:
    """Configure logging for the clonespace CLI.

    Call this early in the CLI entrypoint before any command runs.

    Args:
        debug: Enable DEBUG level with detailed format
        config_debug: ``debug: true`` was set in the config file
        level: Override log level (int or string like "DEBUG", "INFO")
        stream: Output stream (default: stderr)
        log_dir: Store session logs here with rotation (default: no file logging)

    Returns:
        The resolved console log level.
    """
    resolved_level: int
    if level is not None:
        resolved_level = _parse_level(level)
    elif env_level := os.environ.get("CLONESPACE_LOG_LEVEL"):
        resolved_level = _parse_level(env_level)
    elif os.environ.get("CLONESPACE_DEBUG", "").lower() in ("true", "1", "yes"):
        resolved_level = logging.DEBUG
    elif debug or config_debug:
        resolved_level = logging.DEBUG
    else:
        resolved_level = logging.WARNING

    console_format = _DEBUG_FORMAT if resolved_level <= logging.DEBUG else _DEFAULT_FORMAT

    root_logger = logging.getLogger()
    # File handler needs DEBUG records; console handler still filters
    root_logger.setLevel(logging.DEBUG if log_dir else resolved_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(resolved_level)
    console_handler.setFormatter(logging.Formatter(console_format))
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            _cleanup_old_logs(log_dir)

            timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            file_handler = logging.FileHandler(
                log_dir / f"session_{timestamp}.log", mode="w", encoding="utf-8"
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(_DEBUG_FORMAT))
            root_logger.addHandler(file_handler)
        except OSError as e:
            # Non-fatal: keep console logging
            sys.stderr.write(f"Warning: Could not enable persistent logging: {e}\n")

    logging.getLogger(__name__).debug(
        "Logging configured: level=%s, debug=%s, from_config=%s, log_dir=%s",
        logging.getLevelName(resolved_level),
        debug,
        config_debug,
        log_dir,
    )
    return resolved_level


def _parse_level(level: int | str) -> int:
    """Parse log level from int or string."""
    if isinstance(level, int):
        return level
    numeric = getattr(logging, level.upper(), None)
    if isinstance(numeric, int):
        return numeric
    try:
        return int(level)
    except ValueError:
        return logging.WARNING

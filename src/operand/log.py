"""Logging setup for command-line use (Rich console + optional file).

The library itself only creates module loggers under ``operand``; handlers
are attached here, by the CLI or by applications that want the same output.

    from operand.log import setup_logging
    setup_logging(logging.DEBUG, log_file=Path("operand.log"))
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler

ROOT_LOGGER = "operand"


def setup_logging(level: int = logging.WARNING, log_file: Path | None = None) -> logging.Logger:
    """Attach handlers to the ``operand`` logger.

    The RichHandler is added once, however often this is called; a
    FileHandler is added for every *log_file* given.

    Returns:
        The ``operand`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    rich_handlers = [h for h in logger.handlers if isinstance(h, RichHandler)]
    if rich_handlers:
        for handler in rich_handlers:
            handler.setLevel(level)
    else:
        console = RichHandler(
            rich_tracebacks=True,
            show_path=False,
            markup=False,
            log_time_format="[%H:%M:%S]",
        )
        console.setLevel(level)
        logger.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(logging.Formatter("%(asctime)s  %(levelname)s  %(name)s  %(message)s"))
        fh.setLevel(level)
        logger.addHandler(fh)

    return logger

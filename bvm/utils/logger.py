"""Logging setup."""

import logging
from pathlib import Path

_HANDLER_MARK = "_bvm_handler"


def setup_logging(log_dir: Path, verbose: bool = False) -> logging.Logger:
    """Setup logging for the ``bvm`` logger: everything to a file, warnings to the console."""
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("bvm")
    logger.setLevel(logging.DEBUG)

    # Re-running setup (tests, repeated CLI invocations in one process) replaces our handlers
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    # File handler
    file_handler = logging.FileHandler(log_dir / "bvm.log", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    file_handler.setFormatter(file_formatter)
    setattr(file_handler, _HANDLER_MARK, True)
    logger.addHandler(file_handler)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_formatter = logging.Formatter('%(levelname)s: %(message)s')
    console_handler.setFormatter(console_formatter)
    setattr(console_handler, _HANDLER_MARK, True)
    logger.addHandler(console_handler)

    return logger

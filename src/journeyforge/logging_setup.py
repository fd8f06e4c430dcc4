"""Logging configuration for journeyforge."""

from __future__ import annotations

import logging
import os
from collections import OrderedDict

ROOT_LOGGER = "journeyforge"


def setup_logging(
    log_file: str | None = None,
    verbose: bool = False,
    logger_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """
    Configure dual-handler logging (console + file).

    Args:
        log_file: Path to log file (None for no file logging)
        verbose: Enable DEBUG level on console (default WARNING)
        logger_name: Logger to configure; every module logger below it inherits

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    # Re-running a command in the same process must not duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(
        logging.Formatter("%(levelname)-8s | %(name)s | %(message)s")
    )
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


class WarnOnce:
    """
    Bounded "already warned" set with least-recently-used eviction.

    Owned by one component (e.g. a matcher) instead of living at module
    level, so repeated warnings for the same key are logged once per owner
    and memory stays bounded on long runs.
    """

    def __init__(self, logger: logging.Logger, max_keys: int = 256):
        """
        Args:
            logger: Logger the warnings are emitted on
            max_keys: Keys remembered before the least recently seen is evicted
        """
        if max_keys < 1:
            raise ValueError("max_keys must be at least 1")
        self._logger = logger
        self._max_keys = max_keys
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def warn(self, key: str, message: str, *args: object) -> bool:
        """
        Log ``message`` unless ``key`` was already warned about.

        Returns:
            True if the warning was emitted
        """
        if key in self._seen:
            self._seen.move_to_end(key)
            return False
        self._seen[key] = None
        if len(self._seen) > self._max_keys:
            self._seen.popitem(last=False)
        self._logger.warning(message, *args)
        return True

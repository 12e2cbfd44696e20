"""Logging setup for termtabs.

Everything under the ``termtabs`` logger namespace (one logger per module,
tab ids in the message prefix) ends up on the handlers installed here.
"""

from __future__ import annotations

import logging
import sys

from termtabs.config.settings import LoggingConfig

_HANDLER_MARK = "_termtabs_handler"


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Configure the 'termtabs' logger from ``config``.

    Safe to call more than once: handlers installed by an earlier call are
    replaced rather than stacked.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).

    Returns:
        The configured package logger.
    """
    if config is None:
        config = LoggingConfig()

    package_logger = logging.getLogger("termtabs")
    package_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(package_logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            package_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(config.format)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        package_logger.addHandler(handler)

    package_logger.debug("Logging initialized at %s level", config.level)
    return package_logger

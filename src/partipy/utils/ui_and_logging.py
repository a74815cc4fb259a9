"""This module contains functionality for logging and tqdm progress bars."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from tqdm.autonotebook import tqdm as progressbar_class
from tqdm.contrib.logging import (
    _get_first_found_console_logging_handler,
    _TqdmLoggingHandler,
    logging_redirect_tqdm,
)

__all__ = ["progressbar_class", "logging_redirect_tqdm_with_level"]


@contextmanager
def logging_redirect_tqdm_with_level(
    loggers: list[logging.Logger] | None = None,
    active: bool = True,
    tqdm_class: type = progressbar_class,
) -> Iterator[None]:
    """Extend capability of ``tqdm.contrib.logging_redirect_tqdm`` s.t. the logging
    handler level gets passed.

    Parameters:
        loggers: List of loggers to redirect. If not provided, the root logger is used.
        active: Whether progress bars are shown. If not, logging is left untouched.
        tqdm_class: The class to use for the progress bar.

    Returns:
        An iterator that redirects logging to the tqdm progress bar. The logging level
        of the handlers is set to the level of the original logger or the handler if it
        exists.

    """
    # The handlers added by ``logging_redirect_tqdm`` do not account for the logging
    # level of the passed logger, see https://github.com/tqdm/tqdm/issues/1272.
    if not active:
        yield

    else:
        if loggers is None:
            loggers = [logging.root]
        # Save loggers and a corresponding handler for each logger.
        original_handlers_dict: dict[logging.Logger, logging.Handler] = {
            logger: _get_first_found_console_logging_handler(logger.handlers)
            for logger in loggers
        }
        # Let ``logging_redirect_tqdm`` do its work and change the level of the handlers
        # afterwards.
        with logging_redirect_tqdm(loggers, tqdm_class):
            for logger, orig_handler in original_handlers_dict.items():
                for handler in logger.handlers:
                    if isinstance(handler, _TqdmLoggingHandler):
                        # If the original logger has a handler, copy its level.
                        if orig_handler is not None:
                            handler.level = orig_handler.level
                        # Otherwise, copy the level of the logger.
                        else:
                            handler.level = logger.level

            yield

import logging
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "sdk_download"

def configure_logging(debug: bool = False, console: Optional[Console] = None) -> logging.Logger:
    """
    send the package's log records to the console.

    args:
        debug: log at DEBUG instead of INFO.
        console: rich console to render on, stderr by default.

    returns:
        the configured package logger.
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=debug,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False
    return logger

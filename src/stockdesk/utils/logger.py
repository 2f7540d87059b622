import logging
import os

from rich.logging import RichHandler

ENV_DEBUG = "STOCKDESK_DEBUG"
ENV_LOG_FILE = "STOCKDESK_LOG_FILE"


class CenteredFormatter(logging.Formatter):
    """Pads logger names to the widest one seen so far, so messages line up."""

    longest_name_length = 12

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        record.name = record.name.center(CenteredFormatter.longest_name_length)
        return super().format(record)


def _log_level() -> int:
    if os.getenv(ENV_DEBUG) or os.getenv("DEBUG"):
        return logging.DEBUG
    return logging.INFO


def get_logger(name=None) -> logging.Logger:
    """
    Return a logger writing through RichHandler.

    The TUI owns the terminal while it runs, so STOCKDESK_LOG_FILE can
    redirect records to a plain file as well.
    """
    name = name or "stockdesk"
    logger = logging.getLogger(name)
    level = _log_level()
    logger.setLevel(level)

    if not logger.handlers:
        formatter = CenteredFormatter("[%(name)s]  %(message)s")

        console_handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        console_handler.setFormatter(formatter)
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

        log_file = os.getenv(ENV_LOG_FILE)
        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)-8s [%(name)s] %(message)s")
            )
            file_handler.setLevel(level)
            logger.addHandler(file_handler)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized.")

    return logger

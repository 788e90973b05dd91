"""Bunch of random utilities."""

import logging
import os
from pathlib import Path


def setup_console_logging(
    default_log_level="warning",
    simplified_logging=False,
    log_file: str | Path = None,
) -> logging.Logger:
    """Set up coloured log output.

    - Helper function to have nicer logging output in simulation scripts

    - ``LOG_LEVEL`` environment variable overrides ``default_log_level``

    :param simplified_logging:
        Only print the message, for scripts narrating a scenario

    :param log_file:
        Output both console and this log file.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    if simplified_logging:
        fmt = "%(message)s"
    else:
        fmt = "%(asctime)s %(name)-40s %(message)s"
    date_fmt = "%H:%M:%S"

    try:
        # Optional dev dependency
        import coloredlogs

        coloredlogs.install(level=numeric_level, fmt=fmt, date_fmt=date_fmt)
    except ImportError:
        # non-ANSI e.g. Docker
        logging.basicConfig(level=numeric_level, format=fmt, datefmt=date_fmt)

    root = logging.getLogger()

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(min(logging.INFO, numeric_level))
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))
        root.addHandler(file_handler)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return root

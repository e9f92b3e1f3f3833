"""
Centralized logging configuration for bidnet.

Console output is colorized with colorlog; an optional plain-text file
handler mirrors everything under the service log directory. Each subsystem
(engine, dispatcher, storage, server, client, identity) gets its own child
of the ``bidnet`` logger.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog


class BidnetLogger:
    """Owns the handlers on the ``bidnet`` logger; configured once per process."""

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[Union[str, Path]] = None,
        log_to_file: bool = False,
        force: bool = False,
    ):
        """
        Attach console (and optionally file) handlers to the ``bidnet`` logger.

        Args:
            level: Threshold for both handlers
            log_dir: Where bidnet.log goes; ./logs when None
            log_to_file: Also write plain-text records to bidnet.log
            force: Reconfigure even if setup already ran (the CLI calls
                this once its options are parsed)
        """
        if cls._initialized and not force:
            return

        if log_to_file:
            cls._log_dir = Path(log_dir) if log_dir else Path("logs")
            cls._log_dir.mkdir(exist_ok=True, parents=True)

        root_logger = logging.getLogger("bidnet")
        root_logger.setLevel(level)
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        console_handler = colorlog.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_formatter = colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

        if log_to_file and cls._log_dir:
            file_handler = logging.FileHandler(cls._log_dir / "bidnet.log")
            file_handler.setLevel(level)
            file_formatter = logging.Formatter(
                "%(asctime)s [%(name)s] %(levelname)-8s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
            file_handler.setFormatter(file_formatter)
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Child logger ``bidnet.<name>``, setting up defaults on first use."""
        if not cls._initialized:
            cls.setup()

        return logging.getLogger(f"bidnet.{name}")


def get_logger(name: str) -> logging.Logger:
    """Logger for one bidnet subsystem, e.g. get_logger("engine")."""
    return BidnetLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    log_to_file: bool = False,
):
    """Reconfigure bidnet logging, replacing whatever handlers are installed."""
    BidnetLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=True)

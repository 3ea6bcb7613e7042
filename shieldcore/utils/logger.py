"""
Logging for shieldcore.

All loggers live under the "shieldcore" namespace. The console handler is
colored with colorlog; a plain-text file handler is added when a log
directory is given. Wallet-scoped messages go through WalletLogAdapter so
that several wallets in one process can be told apart without ever logging
key material.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

ROOT = "shieldcore"
LOG_FILE = "shieldcore.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

_configured = False


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    force: bool = False,
) -> logging.Logger:
    """
    Configure the shieldcore logger tree.

    Args:
        level: Level as int or name ("DEBUG", "info", ...)
        log_dir: Directory for shieldcore.log; console only if None
        force: Replace handlers installed by an earlier call

    Returns:
        The root "shieldcore" logger
    """
    global _configured
    root = logging.getLogger(ROOT)
    if _configured and not force:
        return root

    level = _resolve_level(level)
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = colorlog.StreamHandler(sys.stdout)
    console.setFormatter(colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS))
    root.addHandler(console)

    if log_dir is not None:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path / LOG_FILE, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(file_handler)

    _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for a subsystem, e.g. get_logger("sync") -> shieldcore.sync"""
    if not _configured:
        setup_logging()
    return logging.getLogger(f"{ROOT}.{name}")


class WalletLogAdapter(logging.LoggerAdapter):
    """Prefixes records with a short wallet id."""

    def process(self, msg, kwargs):
        return f"[wallet {self.extra['wallet']}] {msg}", kwargs


def wallet_logger(name: str, wallet_id: str) -> WalletLogAdapter:
    """Subsystem logger tagged with the first 8 hex chars of a wallet id."""
    return WalletLogAdapter(get_logger(name), {"wallet": wallet_id[:8]})

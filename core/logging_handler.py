import logging
import os
from typing import Optional, Set

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_FILE = "focustimer.log"

_loggers: Set[str] = set()


def _level(name: Optional[str], default: int) -> int:
    if not name:
        return default
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def _add_file_handler(logger: logging.Logger, log_dir: str, log_file: str) -> None:
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.abspath(os.path.join(log_dir, log_file))
    for h in logger.handlers:
        if isinstance(h, logging.FileHandler) and h.baseFilename == path:
            return
    file_handler = logging.FileHandler(path)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)


def setup_logger(
    name: str,
    log_file: str = DEFAULT_LOG_FILE,
    level: Optional[int] = None,
    console: bool = True,
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """Configure and return a module-level logger."""
    logger = logging.getLogger(name)
    if level is None:
        level = _level(os.getenv("FOCUSTIMER_LOG_LEVEL"), logging.INFO)
    logger.setLevel(level)

    if not logger.handlers:
        log_dir = log_dir or os.getenv("FOCUSTIMER_LOG_DIR")
        if log_dir:
            _add_file_handler(logger, log_dir, log_file)

        if console:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(console_handler)

    _loggers.add(name)
    return logger


def configure_loggers(level: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """Re-apply level / log file to every logger made by setup_logger (after config is loaded)."""
    for name in _loggers:
        logger = logging.getLogger(name)
        if level:
            logger.setLevel(_level(level, logger.level))
        if log_dir:
            _add_file_handler(logger, log_dir, DEFAULT_LOG_FILE)

import logging
import os


PACKAGE_LOGGER = "loan_reminder"

_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _level_from_env() -> int:
    name = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName("WARNING" if name == "WARN" else name)
    return level if isinstance(level, int) else logging.INFO


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)


def _package_logger() -> logging.Logger:
    root = logging.getLogger(PACKAGE_LOGGER)
    if root.handlers:
        return root

    level = _level_from_env()
    root.setLevel(level)
    _attach(root, logging.StreamHandler(), level)

    log_file = os.environ.get("LOG_FILE")
    if log_file:
        try:
            _attach(root, logging.FileHandler(log_file, encoding="utf-8"), level)
        except OSError:
            root.warning("LOG_FILE %s could not be opened; continuing without file logging", log_file)

    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Return the ``loan_reminder.<name>`` logger.

    Handlers live once on the package logger, which does not propagate to
    the root logger. LOG_LEVEL (default INFO) and LOG_FILE (appended to)
    are read when the first logger is requested.
    """
    _package_logger()
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")

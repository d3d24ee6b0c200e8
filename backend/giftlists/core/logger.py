import logging
from pathlib import Path

from giftlists.core.config import Settings, settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
AUDIT_LOGGER = "giftlists.audit"


def _has_file_handler(logger: logging.Logger, path: Path) -> bool:
    return any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(path.resolve())
        for handler in logger.handlers
    )


def _attach_file(logger: logging.Logger, filename: str, formatter: logging.Formatter) -> None:
    path = Path(filename)
    if _has_file_handler(logger, path):
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _quiet_names(config: Settings) -> list[str]:
    return [name.strip() for name in config.quiet_loggers.split(",") if name.strip()]


def configure_logging(config: Settings = settings) -> logging.Logger:
    """Set up the root handlers once and return the ``giftlists`` logger.

    Safe to call repeatedly: stream and file handlers are only added when
    missing. Audit records propagate to the root handlers and are copied to
    ``audit_log_file`` when one is configured.
    """
    level = getattr(logging, (config.log_level or "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    if not root.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
    if config.log_file:
        _attach_file(root, config.log_file, formatter)
    root.setLevel(level)

    if config.audit_log_file:
        _attach_file(logging.getLogger(AUDIT_LOGGER), config.audit_log_file, formatter)

    for name in _quiet_names(config):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger("giftlists")
    logger.setLevel(level)
    return logger

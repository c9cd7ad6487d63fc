"""Logging initialization helpers."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from scribeflow.config import LoggingSettings, Settings

_PACKAGE_LOGGER = "scribeflow"
_CONFIGURED_FLAG = "_scribeflow_configured"


def _resolve_log_file(cfg: LoggingSettings, log_dir: str) -> Path | None:
    if not cfg.file:
        return None
    path = Path(str(cfg.file))
    if not path.is_absolute():
        path = Path(log_dir) / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _build_handlers(settings: Settings, level: int) -> list[logging.Handler]:
    cfg = settings.logging
    formatter = logging.Formatter(fmt=str(cfg.format), datefmt=str(cfg.datefmt))

    handlers: list[logging.Handler] = []
    if cfg.console:
        handlers.append(logging.StreamHandler())

    log_file = _resolve_log_file(cfg, settings.log_dir)
    if log_file is not None:
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=int(cfg.max_bytes),
                backupCount=int(cfg.backup_count),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logging(settings: Settings, *, force: bool = False) -> logging.Logger:
    """Configure the `scribeflow` logger tree from Settings.

    Host application loggers are never touched. Calling this twice is a no-op
    unless `force` is set (used by the CLI when `--verbose` is given after
    an earlier setup).
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    if getattr(logger, _CONFIGURED_FLAG, False) and not force:
        return logger

    level_name = str(settings.logging.level or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in _build_handlers(settings, level):
        logger.addHandler(handler)

    logger.setLevel(level)
    logger.propagate = False
    setattr(logger, _CONFIGURED_FLAG, True)
    return logger

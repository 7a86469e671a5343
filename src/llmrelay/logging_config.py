# src/llmrelay/logging_config.py
"""
Logging Configuration for llmrelay.

llmrelay modules only ever call ``logging.getLogger(__name__)``; nothing is
printed unless the host application configures handlers. This module is the
optional, one-call way to do that from the ``[logging]`` configuration
section:

- Console logging gated by a :class:`DisplayFilter`
- Optional per-run or rotating file logging
- Per-component log level overrides (llmrelay, httpx, provider SDKs...)

**Display filter**: with ``console_enabled=False`` (the default) the console
handler still exists but only lets through records logged with
``extra={"display": True}`` (see :func:`log_display`). Routine retry and
routing chatter stays off the console while a few operational notices
still reach the operator.

Usage:
    from llmrelay.logging_config import configure_logging, log_display

    configure_logging(config={"console_enabled": True, "console_level": "INFO"})

    import logging
    logger = logging.getLogger("myapp")
    log_display(logger, logging.INFO, "Relay ready with %d providers", 3)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/llmrelay/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "llmrelay": "INFO",
        "confy": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "openai": "WARNING",
        "anthropic": "WARNING",
        "google_genai": "WARNING",
    },
}


def _resolve_level(level: str | int, default: int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else default


class DisplayFilter(logging.Filter):
    """Controls which log records pass through to the console handler.

    When the console is globally enabled every record passes and the
    handler's own level decides. Otherwise only records carrying
    ``record.display = True`` at or above ``display_min_level`` pass.
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


class LoggingManager:
    """
    Process-wide owner of the handlers installed by :func:`configure_logging`.

    Only handlers created here are ever removed; handlers installed by the
    host application are left in place.
    """

    _instance: Optional["LoggingManager"] = None

    def __init__(self) -> None:
        self.configured = False
        self.log_file_path: Path | None = None
        self.console_handler: logging.Handler | None = None
        self.file_handler: logging.Handler | None = None
        self.display_filter: DisplayFilter | None = None

    @classmethod
    def get_instance(cls) -> "LoggingManager":
        """Get the shared instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def configure(
        self,
        app_name: str = "llmrelay",
        config: dict[str, Any] | None = None,
        config_file_path: str | Path | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Installs the console and file handlers described by the logging section.

        Args:
            app_name: Used in the log file name.
            config: The ``[logging]`` section; loaded through the llmrelay
                config layers when omitted.
            config_file_path: User config file consulted when ``config`` is omitted.
            force_reconfigure: Replace handlers installed by a previous call.

        Returns:
            The log file path, or None when file logging is off.
        """
        if self.configured and not force_reconfigure:
            return self.log_file_path

        log_config = self._load_config(config, config_file_path)
        root_logger = logging.getLogger()
        self._remove_own_handlers(root_logger)
        root_logger.setLevel(logging.DEBUG)

        console_globally_enabled = bool(log_config.get("console_enabled", False))
        self.display_filter = DisplayFilter(
            console_globally_enabled=console_globally_enabled,
            display_min_level=_resolve_level(log_config.get("display_min_level", "INFO"), logging.INFO),
        )
        self.console_handler = self._create_console_handler(log_config)
        if not console_globally_enabled:
            # The filter is the only gate while the console is "off".
            self.console_handler.setLevel(logging.DEBUG)
        self.console_handler.addFilter(self.display_filter)
        root_logger.addHandler(self.console_handler)

        self.log_file_path = None
        if log_config.get("file_enabled", False):
            self.file_handler, self.log_file_path = self._create_file_handler(log_config, app_name)
            if self.file_handler is not None:
                root_logger.addHandler(self.file_handler)

        for component_name, level_str in log_config.get("components", {}).items():
            self.set_component_level(component_name, level_str)

        self.configured = True
        logging.getLogger(__name__).debug(f"llmrelay logging configured. Log file: {self.log_file_path}")
        return self.log_file_path

    def _remove_own_handlers(self, root_logger: logging.Logger) -> None:
        for handler in (self.console_handler, self.file_handler):
            if handler is not None:
                root_logger.removeHandler(handler)
                handler.close()
        self.console_handler = None
        self.file_handler = None

    @staticmethod
    def _load_config(config: dict[str, Any] | None, config_file_path: str | Path | None) -> dict[str, Any]:
        if config is not None:
            return {**DEFAULT_LOGGING_CONFIG, **config}

        from .config.loader import load_config_store

        try:
            store = load_config_store(config_file_path)
        except ConfigError as e:
            sys.stderr.write(f"Warning: Falling back to default logging configuration: {e}\n")
            return DEFAULT_LOGGING_CONFIG.copy()
        logging_section = store.get("logging", {}) or {}
        return {**DEFAULT_LOGGING_CONFIG, **dict(logging_section)}

    @staticmethod
    def _create_console_handler(config: dict[str, Any]) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_resolve_level(config.get("console_level", "WARNING"), logging.WARNING))
        handler.setFormatter(logging.Formatter(config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"])))
        return handler

    @staticmethod
    def _create_file_handler(config: dict[str, Any], app_name: str) -> tuple[logging.Handler | None, Path | None]:
        """Creates a per-run file handler, or a rotating one when ``file_mode == "single"``."""
        log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        try:
            if config.get("file_mode", "per_run") == "single":
                try:
                    filename = config.get("file_single_name", "{app}.log").format(app=app_name)
                except (KeyError, ValueError):
                    filename = f"{app_name}.log"
                log_file_path = log_dir / filename
                handler: logging.Handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config.get("rotation_max_bytes", 10 * 1024 * 1024),
                    backupCount=config.get("rotation_backup_count", 5),
                    encoding="utf-8",
                )
            else:
                timestamp = datetime.now()
                try:
                    filename = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"]).format(
                        app=app_name, timestamp=timestamp
                    )
                except (KeyError, ValueError):
                    filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
                log_file_path = log_dir / filename
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file in {log_dir}: {e}\n")
            return None, None

        handler.setLevel(_resolve_level(config.get("file_level", "DEBUG"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
        return handler, log_file_path

    def set_console_level(self, level: str | int) -> None:
        if self.console_handler is not None:
            self.console_handler.setLevel(_resolve_level(level, self.console_handler.level))

    def set_file_level(self, level: str | int) -> None:
        if self.file_handler is not None:
            self.file_handler.setLevel(_resolve_level(level, self.file_handler.level))

    @staticmethod
    def set_component_level(component: str, level: str | int) -> None:
        component_logger = logging.getLogger(component)
        component_logger.setLevel(_resolve_level(level, component_logger.level))


# ---------------------------------------------------------------------------
# Public module-level functions
# ---------------------------------------------------------------------------


def configure_logging(
    app_name: str = "llmrelay",
    config: dict[str, Any] | None = None,
    config_file_path: str | Path | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure logging handlers for an application embedding llmrelay.

    Example:
        configure_logging(
            config={
                "console_enabled": True,
                "console_level": "INFO",
                "components": {"llmrelay.resilience": "DEBUG"},
            }
        )
    """
    return LoggingManager.get_instance().configure(
        app_name=app_name,
        config=config,
        config_file_path=config_file_path,
        force_reconfigure=force_reconfigure,
    )


def log_display(
    logger: logging.Logger,
    level: int,
    msg: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Log a message that also appears on the console in silent mode.

    Wraps ``logger.log()`` and merges ``{"display": True}`` into ``extra``.
    ``display_min_level`` still applies.
    """
    extra = kwargs.pop("extra", None) or {}
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def get_log_file_path() -> Path | None:
    return LoggingManager.get_instance().log_file_path


def set_console_level(level: str | int) -> None:
    """Change console log level at runtime."""
    LoggingManager.get_instance().set_console_level(level)


def set_file_level(level: str | int) -> None:
    """Change file log level at runtime."""
    LoggingManager.get_instance().set_file_level(level)


def set_component_level(component: str, level: str | int) -> None:
    """Change a specific component's log level at runtime."""
    LoggingManager.get_instance().set_component_level(component, level)


__all__ = [
    "DEFAULT_LOGGING_CONFIG",
    "DisplayFilter",
    "LoggingManager",
    "configure_logging",
    "get_log_file_path",
    "log_display",
    "set_component_level",
    "set_console_level",
    "set_file_level",
]

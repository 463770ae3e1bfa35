# ==============================================================================
# utils/logging.py - Logging configuration for CourseTrack
# ==============================================================================

"""
Logging setup for CourseTrack.

One ``dictConfig`` per environment: coloured console output while
developing, JSON files with a separate error log in production and a quiet
console in tests. Modules log through ``logging.getLogger(__name__)`` so
everything under the ``coursetrack`` logger picks up this configuration.
"""

import functools
import json
import logging
import logging.config
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

_RESERVED_RECORD_KEYS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, extra fields included under ``extra``"""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra_fields = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS}
            if extra_fields:
                log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # [TIMESTAMP] LEVEL LOGGER:LINE - MESSAGE
        formatted = (
            f"[{datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{record.levelname:8} {record.name}:{record.lineno} - {record.getMessage()}"
        )
        if self.use_colors and record.levelname in self.COLORS:
            formatted = f"{self.COLORS[record.levelname]}{formatted}{self.RESET}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def log_database_operation(logger: logging.Logger, operation: str):
    """
    Decorator for document store methods.

    Logs the collection (first positional argument when it is a string) and
    the elapsed time at DEBUG; failures are logged and re-raised.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            target = args[0] if args and isinstance(args[0], str) else None
            label = f"{operation} [{target}]" if target else operation
            started = time.perf_counter()
            try:
                result = func(self, *args, **kwargs)
            except Exception as e:
                logger.debug(f"Store operation failed: {label} - {e}")
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.debug(f"Store operation completed: {label} in {elapsed_ms:.1f}ms")
            return result

        return wrapper
    return decorator


class LoggingContext:
    """Context manager yielding a LoggerAdapter that tags records with ``extra_fields``"""

    def __init__(self, logger: logging.Logger, **extra_fields):
        self.logger = logger
        self.extra_fields = extra_fields

    def __enter__(self):
        return logging.LoggerAdapter(self.logger, self.extra_fields)

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.logger.error(f"Failed with context {self.extra_fields}: {exc_val}")
        return False


# ==============================================================================
# Logging configuration dictionaries
# ==============================================================================

def _rotating_file(filename: str, level: str, formatter: str, max_bytes: int, backups: int) -> Dict[str, Any]:
    return {
        'class': 'logging.handlers.RotatingFileHandler',
        'level': level,
        'formatter': formatter,
        'filename': filename,
        'maxBytes': max_bytes,
        'backupCount': backups,
        'encoding': 'utf-8',
    }


def get_logging_config(environment: str, log_dir: str = 'logs', level: Optional[str] = None,
                       log_file: Optional[str] = None) -> Dict[str, Any]:
    """dictConfig for ``development``, ``production`` or ``testing``"""
    formatters = {
        'colored': {'()': 'coursetrack.utils.logging.ColoredFormatter'},
        'json': {'()': 'coursetrack.utils.logging.JSONFormatter', 'include_extra': True},
        'plain': {'format': '%(levelname)s - %(name)s - %(message)s'},
    }
    noisy = {name: {'level': 'WARNING'} for name in NOISY_LOGGERS}

    if environment == 'testing':
        return {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': formatters,
            'handlers': {'console': {'class': 'logging.StreamHandler', 'level': 'ERROR', 'formatter': 'plain'}},
            'loggers': {'coursetrack': {'level': level or 'ERROR', 'handlers': ['console'], 'propagate': False},
                        'sqlalchemy': {'level': 'ERROR'}},
            'root': {'level': 'ERROR', 'handlers': ['console']},
        }

    console = {'class': 'logging.StreamHandler', 'stream': 'ext://sys.stdout'}
    if environment == 'production':
        level = level or 'INFO'
        handlers = {
            'console': dict(console, level=level, formatter='plain'),
            'file': _rotating_file(f"{log_dir}/{log_file or 'coursetrack.log'}", level, 'json', 50 * 1024 * 1024, 10),
            'error_file': _rotating_file(f"{log_dir}/coursetrack_errors.log", 'ERROR', 'json', 10 * 1024 * 1024, 5),
        }
        root_level = 'WARNING'
    else:
        level = level or 'DEBUG'
        handlers = {
            'console': dict(console, level=level, formatter='colored'),
            'file': _rotating_file(f"{log_dir}/{log_file or 'coursetrack_dev.log'}", level, 'json', 10 * 1024 * 1024, 3),
        }
        root_level = 'INFO'

    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': formatters,
        'handlers': handlers,
        'loggers': dict(noisy, coursetrack={'level': level, 'handlers': list(handlers), 'propagate': False}),
        'root': {'level': root_level, 'handlers': ['console']},
    }


def configure_logging_from_dict(config: Dict[str, Any]) -> None:
    """Apply a dictConfig, creating the directories of any file handlers first"""
    for handler_config in config.get('handlers', {}).values():
        if 'filename' in handler_config:
            Path(handler_config['filename']).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(config)


def auto_configure_logging(environment: str = None, log_dir: str = None, level: str = None,
                           log_file: str = None):
    """Configure logging based on the ENVIRONMENT variable"""
    env = (environment or os.getenv('ENVIRONMENT', 'development')).lower()
    log_dir = log_dir or os.getenv('LOG_DIR', 'logs')
    level = level.upper() if level else None

    configure_logging_from_dict(get_logging_config(env, log_dir, level, log_file))
    logging.getLogger(__name__).info(f"Logging configured for {env} environment")

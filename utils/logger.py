"""
Logging utility for the API test suite.

Log level comes from config/config.ini (DEFAULT.log_level) and can be
overridden with environment variables:

    export LOG_LEVEL=DEBUG
    export LOG_FORMAT=colored  # or json, standard
    export LOG_TO_FILE=false
"""
import logging
import logging.handlers
import os
import sys
import json
import configparser
from pathlib import Path
from datetime import datetime
from typing import Optional, Dict, Any
import threading
import traceback


DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

# Attributes every LogRecord carries; anything else was passed through `extra`
_RECORD_ATTRIBUTES = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'message', 'taskName'
}


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        original = record.levelname
        record.levelname = f"{color}{original}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_obj = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
            'thread_name': record.threadName,
        }

        if record.exc_info:
            log_obj['exception'] = {
                'type': record.exc_info[0].__name__, # type: ignore
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES:
                log_obj[key] = value

        return json.dumps(log_obj, default=str, ensure_ascii=False)


class EnhancedLogger:
    """Registry of configured loggers sharing one configuration."""

    def __init__(self, config_path: str = 'config/config.ini'):
        self._loggers: Dict[str, logging.Logger] = {}
        self._lock = threading.Lock()
        self._config_path = Path(config_path)
        self._config = self._load_default_config()

    def _read_ini_log_level(self) -> str:
        """Read log_level from the DEFAULT section of config.ini."""
        if not self._config_path.exists():
            return 'INFO'
        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(self._config_path, encoding='utf-8')
        except configparser.Error as e:
            print(f"Warning: Could not load log_level from {self._config_path}: {e}")
            return 'INFO'
        return parser['DEFAULT'].get('log_level', 'INFO')

    def _load_default_config(self) -> Dict[str, Any]:
        """Load logging configuration from config.ini and environment variables."""
        return {
            'log_level': os.getenv('LOG_LEVEL', self._read_ini_log_level()),
            'log_format': os.getenv('LOG_FORMAT', 'standard'),  # standard, json, colored
            'max_file_size': int(os.getenv('LOG_MAX_FILE_SIZE', '10485760')),  # 10MB
            'backup_count': int(os.getenv('LOG_BACKUP_COUNT', '5')),
            'log_to_console': os.getenv('LOG_TO_CONSOLE', 'true').lower() == 'true',
            'log_to_file': os.getenv('LOG_TO_FILE', 'true').lower() == 'true',
            'logs_base_dir': os.getenv('LOGS_BASE_DIR', 'logs'),
        }

    def _build_formatter(self) -> logging.Formatter:
        format_type = self._config['log_format']
        if format_type == 'json':
            return JSONFormatter()
        if format_type == 'colored':
            return ColoredFormatter(DEFAULT_FORMAT)
        return logging.Formatter(DEFAULT_FORMAT)

    def setup_logger(
        self,
        name: str,
        log_level: Optional[str] = None,
        log_to_file: Optional[bool] = None,
        log_to_console: Optional[bool] = None
    ) -> logging.Logger:
        """
        Set up a named logger once and return it on later calls.

        Args:
            name: Logger name
            log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_to_file: Whether to log to the rotating file
            log_to_console: Whether to log to stdout

        Returns:
            Configured logger instance
        """
        with self._lock:
            if name in self._loggers:
                return self._loggers[name]

            logger = logging.getLogger(name)
            logger.handlers.clear()

            level = log_level or self._config['log_level']
            logger.setLevel(getattr(logging, level.upper()))
            formatter = self._build_formatter()

            if log_to_console if log_to_console is not None else self._config['log_to_console']:
                console_handler = logging.StreamHandler(sys.stdout)
                if isinstance(formatter, ColoredFormatter) and not sys.stdout.isatty():
                    console_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
                else:
                    console_handler.setFormatter(formatter)
                logger.addHandler(console_handler)

            if log_to_file if log_to_file is not None else self._config['log_to_file']:
                self._add_file_handler(logger, formatter)

            # behave captures the root logger; keep ours separate
            logger.propagate = False

            self._loggers[name] = logger
            return logger

    def _add_file_handler(self, logger: logging.Logger, formatter: logging.Formatter):
        logs_dir = Path(self._config['logs_base_dir'])
        logs_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "api_tests.log",
            maxBytes=self._config['max_file_size'],
            backupCount=self._config['backup_count'],
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    def get_logger(self, name: str) -> logging.Logger:
        """Get existing logger or create new one with default settings."""
        if name in self._loggers:
            return self._loggers[name]
        return self.setup_logger(name)

    def configure_from_dict(self, config: Dict[str, Any]):
        """Update configuration and re-apply the level to existing loggers."""
        self._config.update(config)
        level = getattr(logging, self._config.get('log_level', 'INFO').upper())
        for existing in self._loggers.values():
            existing.setLevel(level)

    @property
    def config(self) -> Dict[str, Any]:
        return dict(self._config)


# Global enhanced logger instance
_enhanced_logger = EnhancedLogger()


def setup_logger(name: str, log_level: Optional[str] = None,
                 log_to_file: Optional[bool] = None,
                 log_to_console: Optional[bool] = None) -> logging.Logger:
    """Set up a logger with the suite-wide configuration."""
    return _enhanced_logger.setup_logger(
        name=name,
        log_level=log_level,
        log_to_file=log_to_file,
        log_to_console=log_to_console
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger by name."""
    return _enhanced_logger.get_logger(name)


def set_log_level(level: str) -> str:
    """Set log level for all loggers and update configuration."""
    level = level.upper()
    if level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
        raise ValueError(f"Invalid log level: {level}")

    _enhanced_logger.configure_from_dict({'log_level': level})
    return level


def log_test_step(step_name: str, **context):
    """Log a test step with context information."""
    message = f"Test Step: {step_name}"
    if context:
        message += " | Context: " + ', '.join(f'{k}={v}' for k, v in context.items())
    test_logger.info(message)


def log_test_result(test_name: str, status: str, **details):
    """Log test result with details."""
    message = f"Test Result: {test_name} - {status.upper()}"
    if details:
        message += " | Details: " + ', '.join(f'{k}={v}' for k, v in details.items())

    if status.upper() in ['PASSED', 'SUCCESS']:
        test_logger.info(message)
    elif status.upper() in ['FAILED', 'ERROR', 'UNDEFINED']:
        test_logger.error(message)
    else:
        test_logger.warning(message)


def log_performance(operation: str, duration_ms: float, **extra):
    """Log a timing measurement in milliseconds."""
    performance_logger.info(
        f"Performance: {operation} completed in {duration_ms:.2f}ms",
        extra={'operation': operation, 'duration_ms': duration_ms, **extra}
    )


logger = setup_logger("api_tests")
api_logger = setup_logger("api")
test_logger = setup_logger("test_execution")
performance_logger = setup_logger("performance")


__all__ = [
    'setup_logger', 'get_logger', 'set_log_level',
    'log_test_step', 'log_test_result', 'log_performance',
    'logger', 'api_logger', 'test_logger', 'performance_logger',
    'EnhancedLogger', 'ColoredFormatter', 'JSONFormatter'
]

"""
Centralized logging configuration for migrations
Console and file handlers plus the request-event sink used by the HTTP core
"""
import logging
import os
from datetime import datetime

ROOT_LOGGER_NAME = "migration"


def create_log_directory(log_path):
    """
    Ensure log directory exists.

    Args:
        log_path: Path to log file
    """
    log_dir = os.path.dirname(log_path)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)


def setup_logger(name, config):
    """
    Setup logger with console and file handlers based on configuration.

    Args:
        name: Logger name (e.g., "migration")
        config: Configuration dictionary containing logging settings

    Returns:
        logging.Logger: Configured logger instance

    Configuration Example:
        {
            "logging": {
                "level": "INFO",           # DEBUG, INFO, WARNING, ERROR, CRITICAL
                "console": true,            # Enable console output
                "file": true,               # Enable file output
                "file_path": "logs/migration_{timestamp}.log",
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            }
        }

    Log Levels:
        - DEBUG: Every HTTP attempt (method, redacted URL, status, duration)
        - INFO: Provisioning results, pagination summaries
        - WARNING: Retries, TLS fallback, authorization gaps
        - ERROR: Failed calls after retries, failed work units
        - CRITICAL: Fatal errors that stop migration
    """
    logger = logging.getLogger(name)

    logging_config = config.get('logging', {})
    log_level = str(logging_config.get('level', 'INFO')).upper()
    console_enabled = logging_config.get('console', True)
    file_enabled = logging_config.get('file', True)
    log_file_path = logging_config.get('file_path', 'logs/migration_{timestamp}.log')
    log_format = logging_config.get('format', '%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_format)

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, log_level, logging.INFO))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if file_enabled:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_file_path.replace('{timestamp}', timestamp)

        create_log_directory(log_file)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.info(f"Log file: {os.path.abspath(log_file)}")

    return logger


def get_logger(name):
    """
    Get a child logger for a specific module.

    Args:
        name: Module name (e.g., "retry", "pagination")

    Returns:
        logging.Logger: Child logger instance
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_http_logger = get_logger("http")


def format_request_event(event):
    """Render a request event as a single log line."""
    status = "connection error" if event.status is None else event.status
    return (f"{event.method} {event.url} attempt={event.attempt} "
            f"status={status} ({event.duration_ms:.0f} ms) [{event.transport}]")


def log_request_event(event):
    """
    Default sink for per-attempt request events.

    Successful attempts go to DEBUG, failed ones to WARNING.

    Args:
        event: RequestEvent emitted by the retry orchestrator
    """
    line = format_request_event(event)
    if event.status is not None and event.status < 400:
        _http_logger.debug(line)
    else:
        _http_logger.warning(line)


class MigrationLogger:
    """
    Migration logger wrapper class.

    Provides a class-based interface for logging with child logger support.
    """

    def __init__(self, name, config):
        """
        Initialize migration logger.

        Args:
            name: Logger name
            config: Configuration dictionary
        """
        self.logger = setup_logger(name, config)
        self.name = name

    def get_child(self, child_name):
        """
        Get a child logger.

        Args:
            child_name: Child logger name

        Returns:
            logging.Logger: Child logger instance
        """
        return logging.getLogger(f"{self.name}.{child_name}")

    def debug(self, message):
        self.logger.debug(message)

    def info(self, message):
        self.logger.info(message)

    def warning(self, message):
        self.logger.warning(message)

    def error(self, message, exc_info=False):
        self.logger.error(message, exc_info=exc_info)

    def critical(self, message, exc_info=False):
        self.logger.critical(message, exc_info=exc_info)

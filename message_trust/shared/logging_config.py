"""
Common logging configuration for the message trust pipeline
"""

import logging
import sys


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(name: str, level: str = "INFO", log_file: str = None) -> logging.Logger:
    """
    Setup a logger with consistent formatting across the project

    Args:
        name: Logger name (typically __name__)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path to write logs to

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Prevent duplicate handlers if logger already configured
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_project_logger(module_name: str, verbose: bool = False) -> logging.Logger:
    """
    Get a logger configured for the pipeline

    Args:
        module_name: Name of the module (typically __name__)
        verbose: Enable debug level logging

    Returns:
        Configured logger that logs to stdout only
    """
    level = "DEBUG" if verbose else "INFO"
    return setup_logger(module_name, level, log_file=None)


class JobLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every record with the upload job it belongs to"""

    def process(self, msg, kwargs):
        return f"[job {self.extra['job_id']}] {msg}", kwargs


def get_job_logger(component: str, job_id) -> logging.LoggerAdapter:
    """
    Logger handed to pipeline components while they work on a single job

    Usage:
        logger = get_job_logger('message_trust.pipeline.parser', job.id)
        logger.info("Parsed 120 records")
    """
    return JobLoggerAdapter(get_project_logger(component), {'job_id': str(job_id)})

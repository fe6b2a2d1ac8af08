"""
Tests for the logging configuration module
"""

import logging

from message_trust.shared.logging_config import JobLoggerAdapter, get_job_logger, get_project_logger, setup_logger


def test_setup_logger_basic():
    """Test basic logger setup"""
    logger = setup_logger("mt_test_logger")

    assert logger.name == "mt_test_logger"
    assert logger.level == logging.INFO
    assert len(logger.handlers) >= 1

def test_setup_logger_with_debug():
    """Test logger setup with debug level"""
    logger = setup_logger("mt_test_debug", level="DEBUG")

    assert logger.level == logging.DEBUG

def test_setup_logger_with_file(temp_dir):
    """Test logger setup with file output"""
    log_file = temp_dir / "test.log"
    logger = setup_logger("mt_test_file", log_file=str(log_file))

    logger.info("Test message")
    for handler in logger.handlers:
        handler.flush()

    assert log_file.exists()
    content = log_file.read_text()
    assert "Test message" in content
    assert "mt_test_file - INFO" in content

def test_get_project_logger_verbose():
    """Test project logger with verbose mode"""
    logger_name = "mt_test_module_verbose"
    if logger_name in logging.Logger.manager.loggerDict:
        del logging.Logger.manager.loggerDict[logger_name]

    logger = get_project_logger(logger_name, verbose=True)

    assert logger.level == logging.DEBUG

def test_duplicate_logger_handlers():
    """Test that duplicate handlers aren't added"""
    logger1 = setup_logger("mt_duplicate_test")
    initial_handlers = len(logger1.handlers)

    logger2 = setup_logger("mt_duplicate_test")

    assert logger1 is logger2
    assert len(logger2.handlers) == initial_handlers

def test_job_logger_prefixes_job_id(caplog):
    """Every record of a job logger names the job"""
    logger = get_job_logger("mt_test_job_component", "1234")

    with caplog.at_level(logging.INFO, logger="mt_test_job_component"):
        logger.info("Parsed 60 records")

    assert isinstance(logger, JobLoggerAdapter)
    assert "[job 1234] Parsed 60 records" in caplog.messages

"""
Logging configuration for the log processor
"""

import logging
import os
import sys
from typing import Optional

LOGGER_NAME = 'log_processor'


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Set up logging configuration for the processor

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    if level is None:
        level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, level, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout
    )

    # Lambda installs its own handler on the root logger before our code runs
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers:
        handler.setLevel(log_level)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    return logger


def format_fields(**fields) -> str:
    """Render fields as a single key=value log line, skipping None values"""
    parts = []
    for key, value in fields.items():
        if value is None:
            continue
        text = str(value)
        if ' ' in text or '=' in text or text == '':
            text = '"' + text.replace('"', '\\"') + '"'
        parts.append(f"{key}={text}")
    return ' '.join(parts)

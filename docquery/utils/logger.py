# docquery/utils/logger.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: logger.py

Logging for the machines and the command-line runner: color-coded console
output plus a timestamped log file per run. Library modules only ever call
get_logger(); handlers are installed once, by setup_logger(), from the
entry point.
"""

import logging
import os
from datetime import datetime

LOG_FORMAT = "[%(levelname)s] [%(asctime)s] [%(module)s:%(funcName)s] %(message)s"
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColorFormatter(logging.Formatter):
    """
    Log formatter that colors console messages by severity.

    Attributes:
        COLORS (dict): Mapping of log levels to ANSI color codes
        RESET (str): ANSI code to reset text color
    """
    COLORS = {
        'DEBUG': '\033[94m',    # Blue
        'INFO': '\033[92m',     # Green
        'WARNING': '\033[93m',  # Yellow
        'ERROR': '\033[91m',    # Red
        'CRITICAL': '\033[95m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.RESET)
        message = super().format(record)
        return f"{color}{message}{self.RESET}"


def setup_logger(log_dir="logs", verbose=False):
    """
    Set up and configure the logging system.

    This function:
    1. Creates the log directory if it doesn't exist
    2. Sets up the root logger with a console and a file handler
    3. Writes DEBUG and above to the file, and INFO and above (DEBUG and
       above when verbose) to the console

    Args:
        log_dir (str): Directory to store log files (default: "logs")
        verbose (bool): Show debug messages on the console

    Returns:
        logging.Logger: Configured logger instance
    """
    os.makedirs(log_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    log_path = os.path.join(log_dir, f"run_{timestamp}.log")

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Re-running setup replaces the previous run's handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_path, mode='w', encoding='utf-8')
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


def get_logger(name=None):
    """
    Get the existing logger by name, or the root logger if None.

    Args:
        name (str, optional): Logger name, typically the module name

    Returns:
        logging.Logger: Logger instance
    """
    return logging.getLogger(name)

"""
Logging utilities for the LXD operations client.
"""

import logging
import sys
from typing import Optional


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up logging configuration.

    Log output goes to stderr so command output on stdout stays clean.

    Args:
        verbose: Enable verbose (DEBUG) logging
        log_file: Optional path to a log file

    Returns:
        Logger instance
    """
    level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    if not verbose:
        logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logging.getLogger(__name__)

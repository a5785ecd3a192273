"""Logging Configuration - Centralized logging setup.

Defaults to INFO level so bearer tokens and request bodies never end up
in debug output.
"""

import logging
import sys
from pathlib import Path
from typing import Union


def setup_logging(
    log_level: Union[int, str] = logging.INFO,
    log_dir: str = "logs",
    log_file: str = "file_picker.log",
) -> None:
    """Configure logging for the application.
    
    Args:
        log_level: Logging level (default: INFO). Accepts a level name.
        log_dir: Directory for the log file.
        log_file: Log file name.
    """
    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path / log_file, encoding="utf-8"),
        ],
    )
    
    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    
    logging.info("Logging initialized (%s level)", logging.getLevelName(log_level))

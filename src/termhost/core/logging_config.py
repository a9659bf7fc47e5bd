"""
Termhost - Terminal Host Platform Layer - Logging Configuration
Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program. If not, see <https://www.gnu.org/licenses/>.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from . import constants


def setup_logging(level=logging.INFO, log_file: Optional[Path] = None):
    """
    Configures application-wide logging to a rotating file and, for
    development runs, the console. Call once at startup.
    """
    log_file = Path(log_file) if log_file else constants.LOG_FILE

    log_formatter = logging.Formatter(
        "%(asctime)s - %(name)-34s - %(levelname)-8s - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(log_formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        # File logging is unavailable; fall back to stderr so nothing is lost.
        logging.basicConfig()
        logging.error(f"Failed to configure file logger: {e}")

    # Frozen builds have no usable console.
    if not getattr(sys, "frozen", False):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(log_formatter)
        root_logger.addHandler(console_handler)

    logging.debug("Logging configured. Log file located at: %s", log_file)

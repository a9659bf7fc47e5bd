# filename: src/termhost/core/constants.py
"""
Termhost - Terminal Host Platform Layer - Constants Module
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

from .utils import get_app_data_path
from .version import __app_name__

# --- Application Metadata ---
APP_NAME = __app_name__

# --- File Names ---
CONFIG_FILENAME = "config.yaml"
SETTINGS_FILENAME = "settings.json"
LOG_FILENAME = "termhost.log"

# Siblings of the canonical config file used by the atomic save sequence.
CONFIG_TEMP_SUFFIX = ".new"
CONFIG_BACKUP_SUFFIX = ".backup"

# --- Transfer Settings ---
TRANSFER_CHUNK_SIZE = 256 * 1024  # 256 KiB reusable read buffer
MAX_ZERO_WRITES = 3  # consecutive writes accepting no bytes before giving up
DEFAULT_IGNORE_PATTERNS = (".DS_Store",)
SUSPEND_BLOCKER_KIND = "prevent-app-suspension"

# --- Application Paths ---
# Base directory for all application data, configuration and logs.
APP_DATA_PATH = get_app_data_path(APP_NAME)

CONFIG_FILE = APP_DATA_PATH / CONFIG_FILENAME
SETTINGS_FILE = APP_DATA_PATH / SETTINGS_FILENAME
LOG_FILE = APP_DATA_PATH / LOG_FILENAME


def initialize_app_directories():
    """
    Creates required application directories.
    This function should be called once at the application's entry point
    to ensure all necessary folders exist before they are accessed.
    """
    APP_DATA_PATH.mkdir(parents=True, exist_ok=True)

# src/termhost/core/utils.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import os
import sys
from pathlib import Path

DATA_DIR_ENV = "TERMHOST_DATA_DIR"


def get_app_data_path(app_name: str) -> Path:
    """
    Returns the per-user directory holding configuration and logs.

    ``$TERMHOST_DATA_DIR`` wins when set, which is how tests and portable
    installs relocate everything.
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()

    if sys.platform == "win32":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / app_name
        return Path.home() / "AppData" / "Roaming" / app_name
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / app_name

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config) if xdg_config else Path.home() / ".config"
    return base / app_name.lower()

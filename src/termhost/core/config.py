# src/termhost/core/config.py
"""
Termhost - Terminal Host Platform Layer - Configuration Management
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

import asyncio
import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import aiofiles
import aiofiles.os

from . import constants
from .exceptions import ConfigurationError, FileOperationError

log = logging.getLogger(__name__)

# --- Default Configuration Values ---
# Tunables of the platform layer itself. The terminal's own configuration
# lives in config.yaml and is handled by AtomicConfigStore as opaque text.

DEFAULT_SETTINGS = {
    "transfer_chunk_size": constants.TRANSFER_CHUNK_SIZE,
    "transfer_ignore_patterns": list(constants.DEFAULT_IGNORE_PATTERNS),
    "log_level": "INFO",
}


class AtomicConfigStore:
    """
    Persists the terminal configuration so that it is never lost or torn.

    Saves run one at a time in submission order. Each save writes the
    content to ``<config>.new`` and ``<config>.backup`` and then renames
    ``.new`` over the canonical file, so readers only ever see a complete
    previous or complete new version. The backup is written on every save
    and never read back; it is there for manual recovery.
    """

    def __init__(self, config_path: Union[str, Path]):
        self.config_path = Path(config_path)
        self._save_in_progress: Optional[asyncio.Future] = None

    @property
    def temp_path(self) -> Path:
        return self.config_path.with_name(self.config_path.name + constants.CONFIG_TEMP_SUFFIX)

    @property
    def backup_path(self) -> Path:
        return self.config_path.with_name(self.config_path.name + constants.CONFIG_BACKUP_SUFFIX)

    async def load(self) -> str:
        """Returns the persisted content, or an empty string on first run."""
        if not await aiofiles.os.path.exists(self.config_path):
            log.debug(f"No config file at {self.config_path}, starting empty")
            return ""
        try:
            async with aiofiles.open(self.config_path, "r", encoding="utf-8", newline="") as f:
                return await f.read()
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise FileOperationError(self.config_path, "Cannot read configuration") from e
        except UnicodeDecodeError as e:
            log.error(f"Config file {self.config_path} is not valid UTF-8: {e}")
            raise FileOperationError(self.config_path, "Configuration is not valid UTF-8") from e

    async def save(self, content: str) -> None:
        """
        Queues a save behind the one currently in flight and waits for it.

        The previous operation is awaited whether it succeeded or failed, so
        one failed save never blocks a later one. The error of a failed save
        is raised to its own caller only.
        """
        previous = self._save_in_progress
        # The swap below must not be separated from the read above by an await.
        operation = asyncio.ensure_future(self._save_after(previous, content))
        operation.add_done_callback(_consume_result)
        self._save_in_progress = operation
        await asyncio.shield(operation)

    async def _save_after(self, previous: Optional[asyncio.Future], content: str) -> None:
        if previous is not None and not previous.done():
            if previous.get_loop() is asyncio.get_running_loop():
                await asyncio.wait({previous})
        await self._write_sequence(content)

    async def _write_sequence(self, content: str) -> None:
        try:
            await aiofiles.os.makedirs(self.config_path.parent, exist_ok=True)
        except OSError as e:
            log.error(f"Cannot create config directory {self.config_path.parent}: {e}")
            raise FileOperationError(self.config_path.parent, "Cannot create config directory") from e

        await self._write_file(self.temp_path, content)
        await self._write_file(self.backup_path, content)
        try:
            await aiofiles.os.replace(self.temp_path, self.config_path)
        except OSError as e:
            log.error(f"Failed to move {self.temp_path} into place: {e}")
            raise FileOperationError(self.config_path, "Cannot replace configuration") from e
        log.debug(f"Configuration saved to {self.config_path} ({len(content)} chars)")

    async def _write_file(self, path: Path, content: str) -> None:
        try:
            async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
                await f.write(content)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
        except OSError as e:
            log.error(f"Failed to write {path}: {e}")
            raise FileOperationError(path, "Cannot write configuration") from e


def _consume_result(operation: asyncio.Future):
    # Marks a failure as retrieved when the awaiting caller was cancelled.
    if not operation.cancelled():
        operation.exception()


class ConfigManager:
    """
    Manages the platform layer's own settings in a JSON file.
    """

    def __init__(self, settings_file: Optional[Path] = None):
        self.settings_file = Path(settings_file) if settings_file else constants.SETTINGS_FILE
        self._json_cache: Dict[str, Any] = {}
        self._load_from_file()

    def _load_from_file(self):
        """
        Loads settings from the JSON file into the cache, ensuring that
        defaults are present for any missing keys.
        """
        self._json_cache = json.loads(json.dumps(DEFAULT_SETTINGS))
        if not self.settings_file.exists():
            log.info("No settings file found. Using default settings.")
            return

        try:
            with self.settings_file.open("r", encoding="utf-8") as f:
                user_settings = json.load(f)
            if not isinstance(user_settings, dict):
                raise ValueError("Settings root must be a JSON object")
            self._json_cache.update(user_settings)
            log.info(f"Settings loaded from {self.settings_file}")
        except (OSError, ValueError) as e:
            log.error(f"Failed to load settings file, using defaults instead: {e}")
            self._json_cache = json.loads(json.dumps(DEFAULT_SETTINGS))

    def _save_to_file(self):
        """Saves the settings cache atomically (temp file, then rename)."""
        tmp = self.settings_file.with_name(self.settings_file.name + ".tmp")
        try:
            self.settings_file.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(self._json_cache, f, indent=4)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.settings_file)
            log.debug(f"Settings saved to {self.settings_file}")
        except OSError as e:
            log.error(f"Failed to save settings file: {e}")
            raise ConfigurationError(f"Cannot save settings: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        return self._json_cache.get(key, default)

    def set(self, key: str, value: Any):
        """
        Sets a value and saves to file.
        """
        if key not in DEFAULT_SETTINGS:
            log.warning(f"Setting an unknown configuration key: '{key}'")
        self._json_cache[key] = value
        self._save_to_file()

    def get_all(self) -> Dict[str, Any]:
        return dict(self._json_cache)

    def reset_to_defaults(self):
        """Resets all settings to their default states."""
        self._json_cache = json.loads(json.dumps(DEFAULT_SETTINGS))
        self._save_to_file()
        log.info("Settings have been reset to defaults.")

    @property
    def chunk_size(self) -> int:
        value = self.get("transfer_chunk_size")
        if not isinstance(value, int) or value <= 0:
            log.warning(f"Invalid transfer_chunk_size {value!r}, using default")
            return constants.TRANSFER_CHUNK_SIZE
        return value

    @property
    def ignore_patterns(self) -> tuple:
        value = self.get("transfer_ignore_patterns")
        if not isinstance(value, (list, tuple)):
            return constants.DEFAULT_IGNORE_PATTERNS
        return tuple(str(p) for p in value)


@lru_cache(maxsize=None)
def get_config_manager() -> ConfigManager:
    """Process-wide settings instance, created on first use."""
    return ConfigManager()

# src/termhost/services/platform_service.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import psutil

from ..core import constants
from ..core.config import AtomicConfigStore
from ..core.exceptions import UnsupportedOperationError
from .file_service import FileService
from .power_service import PowerSaveBlocker
from .transfer_service import FileDownload, FileTransfer, FileUpload

log = logging.getLogger(__name__)

PROCESS_LIST_PLATFORMS = ("win32", "linux", "darwin")


class PlatformService:
    """Host-side services of the terminal: config persistence and local file transfers."""

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        blocker: Optional[PowerSaveBlocker] = None,
        ignore_patterns: Optional[Sequence[str]] = None,
        chunk_size: int = constants.TRANSFER_CHUNK_SIZE,
    ):
        self.config_store = AtomicConfigStore(config_path or constants.CONFIG_FILE)
        self.file_service = FileService(ignore_patterns)
        self.chunk_size = chunk_size
        self._blocker = blocker
        self._transfer_callbacks: List[Callable[[FileTransfer], None]] = []

    # --- Configuration ---

    async def load_config(self) -> str:
        return await self.config_store.load()

    async def save_config(self, content: str):
        await self.config_store.save(content)

    def get_config_path(self) -> Path:
        return self.config_store.config_path

    # --- Transfers ---

    def add_transfer_started_callback(self, callback: Callable[[FileTransfer], None]):
        """Add a callback to be called whenever a transfer has been opened."""
        self._transfer_callbacks.append(callback)

    def _emit_transfer_started(self, transfer: FileTransfer):
        for callback in self._transfer_callbacks:
            try:
                callback(transfer)
            except Exception as e:
                log.error(f"Error in transfer callback: {e}")

    async def start_upload(self, paths: Sequence[Union[str, os.PathLike]]) -> List[FileUpload]:
        """
        Opens one upload per file found under *paths*.

        Either every upload is opened and returned, or all of them are closed
        again and the first error is raised.
        """
        units = await self.file_service.expand_paths(paths)
        transfers = [
            FileUpload(unit.absolute_path, unit.relative_path, chunk_size=self.chunk_size, blocker=self._blocker)
            for unit in units
        ]
        results = await asyncio.gather(*(t.open() for t in transfers), return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            for transfer in transfers:
                await transfer.close()
            log.error(f"Upload of {len(transfers)} file(s) aborted: {errors[0]}")
            raise errors[0]

        for transfer in transfers:
            self._emit_transfer_started(transfer)
        log.info(f"Started upload of {len(transfers)} file(s)")
        return transfers

    async def start_download(self, file_path: Union[str, os.PathLike], mode: int, size: int) -> FileDownload:
        transfer = FileDownload(file_path, mode, size, blocker=self._blocker)
        try:
            await transfer.open()
        except BaseException:
            await transfer.close()
            raise
        self._emit_transfer_started(transfer)
        log.info(f"Started download to {transfer.file_path} ({size} bytes)")
        return transfer

    # --- Host queries ---

    async def is_process_running(self, name: str) -> bool:
        if sys.platform not in PROCESS_LIST_PLATFORMS:
            raise UnsupportedOperationError(f"Process enumeration is not supported on '{sys.platform}'")

        def _scan():
            for proc in psutil.process_iter(attrs=["name"]):
                try:
                    if proc.info.get("name") == name:
                        return True
                except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                    continue
            return False

        return await asyncio.to_thread(_scan)

    async def list_fonts(self) -> List[str]:
        """Monospace font families known to fontconfig (Linux only)."""
        if sys.platform != "linux":
            return []
        try:
            process = await asyncio.create_subprocess_exec(
                "fc-list", ":spacing=mono",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError:
            log.warning("fc-list not found, cannot list fonts")
            return []
        stdout, _ = await process.communicate()

        fonts = set()
        for line in stdout.decode(errors="replace").splitlines():
            parts = line.split(":")
            if len(parts) < 2:
                continue
            family = parts[1].split(",")[0].strip()
            if family:
                fonts.add(family)
        return sorted(fonts)

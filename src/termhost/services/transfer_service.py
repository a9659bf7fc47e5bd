# src/termhost/services/transfer_service.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import logging
import os
import stat
import time
from typing import Callable, List, Optional, Union

import aiofiles
import aiofiles.os

from ..core.constants import MAX_ZERO_WRITES, TRANSFER_CHUNK_SIZE
from ..core.exceptions import FileOperationError, TransferStateError
from .power_service import PowerSaveBlocker, SuspendGuard

log = logging.getLogger(__name__)

ProgressCallback = Callable[["FileTransfer"], None]


class FileTransfer:
    """
    Shared lifecycle of an upload or a download: open, read/write, close.

    ``open`` takes a suspend-prevention token and ``close`` gives it back
    exactly once, whatever happened in between. Use the transfer as an
    async context manager so the close cannot be forgotten.
    """

    def __init__(self, file_path: Union[str, os.PathLike], blocker: Optional[PowerSaveBlocker] = None):
        self.file_path = os.fspath(file_path)
        self._guard = SuspendGuard(blocker)
        self._file = None
        self._size = 0
        self._mode = 0
        self._completed_bytes = 0
        self._started_at: Optional[float] = None
        self._opened = False
        self._closed = False
        self._progress_callbacks: List[ProgressCallback] = []

    @property
    def name(self) -> str:
        return os.path.basename(self.file_path)

    @property
    def mode(self) -> int:
        return self._mode

    @property
    def size(self) -> int:
        return self._size

    @property
    def completed_bytes(self) -> int:
        return self._completed_bytes

    @property
    def is_complete(self) -> bool:
        return self._completed_bytes >= self._size

    @property
    def progress_percent(self) -> float:
        if self._size <= 0:
            return 100.0
        return min(100.0, self._completed_bytes * 100.0 / self._size)

    @property
    def speed(self) -> float:
        """Average bytes per second since the transfer was opened."""
        if self._started_at is None:
            return 0.0
        elapsed = time.monotonic() - self._started_at
        if elapsed <= 0:
            return 0.0
        return self._completed_bytes / elapsed

    @property
    def closed(self) -> bool:
        return self._closed

    def add_progress_callback(self, callback: ProgressCallback):
        self._progress_callbacks.append(callback)

    def increase_progress(self, bytes_count: int):
        self._completed_bytes += bytes_count
        for callback in self._progress_callbacks:
            try:
                callback(self)
            except Exception:
                log.exception("Exception in progress callback")

    async def open(self):
        if self._opened or self._closed:
            raise TransferStateError(f"Transfer for {self.file_path} was already opened")
        self._opened = True
        self._guard.acquire()
        self._started_at = time.monotonic()
        await self._open()
        log.debug(f"Opened {type(self).__name__} for {self.file_path} ({self._size} bytes)")

    async def _open(self):
        raise NotImplementedError

    def _ensure_open(self):
        if self._closed:
            raise TransferStateError(f"Transfer for {self.file_path} is closed")
        if self._file is None:
            raise TransferStateError(f"Transfer for {self.file_path} is not open")

    async def close(self):
        """Releases the suspend-prevention token and the file handle. Safe to call again."""
        if self._closed:
            return
        self._closed = True
        file, self._file = self._file, None
        try:
            self._guard.release()
        finally:
            if file is not None:
                try:
                    await file.close()
                except OSError as e:
                    log.error(f"Failed to close {self.file_path}: {e}")
                    raise FileOperationError(self.file_path, "Cannot close file") from e
        log.debug(f"Closed {type(self).__name__} for {self.file_path} after {self._completed_bytes} bytes")

    async def __aenter__(self):
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class FileUpload(FileTransfer):
    """Streams a local file out through one reusable fixed-size buffer."""

    def __init__(
        self,
        file_path: Union[str, os.PathLike],
        relative_dir: str = "",
        chunk_size: int = TRANSFER_CHUNK_SIZE,
        blocker: Optional[PowerSaveBlocker] = None,
    ):
        super().__init__(file_path, blocker)
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.relative_dir = relative_dir or ""
        self._buffer = bytearray(chunk_size)

    @property
    def name(self) -> str:
        if self.relative_dir:
            return self.relative_dir
        return os.path.basename(self.file_path)

    @property
    def chunk_size(self) -> int:
        return len(self._buffer)

    async def _open(self):
        try:
            st = await aiofiles.os.stat(self.file_path)
            self._size = st.st_size
            self._mode = stat.S_IMODE(st.st_mode)
            self._file = await aiofiles.open(self.file_path, "rb")
        except OSError as e:
            log.error(f"Cannot open {self.file_path} for upload: {e}")
            raise FileOperationError(self.file_path, "Cannot open for reading") from e

    async def read(self) -> memoryview:
        """
        Reads the next chunk into the shared buffer and returns a view of it.

        The view is only valid until the next ``read``; copy it if it must
        outlive that. An empty view means end of file.
        """
        self._ensure_open()
        try:
            bytes_read = await self._file.readinto(self._buffer)
        except OSError as e:
            log.error(f"Read failed for {self.file_path}: {e}")
            raise FileOperationError(self.file_path, "Cannot read") from e
        bytes_read = bytes_read or 0
        self.increase_progress(bytes_read)
        return memoryview(self._buffer)[:bytes_read]


class FileDownload(FileTransfer):
    """Writes incoming bytes to a local file created with a given mode."""

    def __init__(
        self,
        file_path: Union[str, os.PathLike],
        mode: int,
        size: int,
        blocker: Optional[PowerSaveBlocker] = None,
    ):
        super().__init__(file_path, blocker)
        self._mode = mode
        self._size = size

    def _opener(self, path, flags):
        return os.open(path, flags, self._mode)

    async def _open(self):
        try:
            # Unbuffered, so every write reports what the OS really accepted.
            self._file = await aiofiles.open(self.file_path, "wb", buffering=0, opener=self._opener)
        except OSError as e:
            log.error(f"Cannot open {self.file_path} for download: {e}")
            raise FileOperationError(self.file_path, "Cannot open for writing") from e

    async def write(self, data: Union[bytes, bytearray, memoryview]):
        """Writes all of *data*, looping over partial writes."""
        self._ensure_open()
        view = memoryview(data).cast("B")
        pos = 0
        zero_writes = 0
        while pos < len(view):
            try:
                written = await self._file.write(view[pos:])
            except OSError as e:
                log.error(f"Write failed for {self.file_path} at {self._completed_bytes}: {e}")
                raise FileOperationError(self.file_path, "Cannot write") from e
            if not written:
                zero_writes += 1
                if zero_writes >= MAX_ZERO_WRITES:
                    raise FileOperationError(
                        self.file_path, f"Short write, {len(view) - pos} byte(s) not accepted"
                    )
                continue
            zero_writes = 0
            pos += written
            self.increase_progress(written)


async def pipe_transfer(upload: FileUpload, download: FileDownload) -> int:
    """Drains an opened upload into an opened download, returning bytes moved."""
    moved = 0
    while True:
        chunk = await upload.read()
        if not chunk:
            break
        await download.write(chunk)
        moved += len(chunk)
    return moved

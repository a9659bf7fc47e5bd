# src/termhost/services/power_service.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import itertools
import logging
import os
import shutil
import subprocess
import sys
import threading
from functools import lru_cache
from typing import Dict, Optional

from ..core.constants import APP_NAME, SUSPEND_BLOCKER_KIND

log = logging.getLogger(__name__)

SUBPROCESS_FLAGS = 0
if sys.platform == "win32":
    SUBPROCESS_FLAGS = subprocess.CREATE_NO_WINDOW


class PowerSaveBlocker:
    """
    Hands out ids for "keep the machine awake" requests.

    ``start`` engages the host mechanism and returns an id, ``stop`` releases
    the mechanism held for that id. Subclasses only implement ``_engage`` and
    ``_release``; this base class does the bookkeeping and is itself a
    working no-op blocker for hosts without a suspend-prevention API.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self._active: Dict[int, str] = {}

    def start(self, kind: str = SUSPEND_BLOCKER_KIND) -> int:
        blocker_id = next(self._ids)
        self._engage(blocker_id, kind)
        self._active[blocker_id] = kind
        log.debug(f"Power save blocker {blocker_id} started ({kind})")
        return blocker_id

    def stop(self, blocker_id: int):
        if self._active.pop(blocker_id, None) is None:
            log.warning(f"Power save blocker {blocker_id} is not active")
            return
        self._release(blocker_id)
        log.debug(f"Power save blocker {blocker_id} stopped")

    def is_started(self, blocker_id: int) -> bool:
        return blocker_id in self._active

    @property
    def active_count(self) -> int:
        return len(self._active)

    def _engage(self, blocker_id: int, kind: str):
        pass

    def _release(self, blocker_id: int):
        pass


class _WindowsPowerSaveBlocker(PowerSaveBlocker):
    """Holds ES_SYSTEM_REQUIRED while at least one id is active."""

    ES_CONTINUOUS = 0x80000000
    ES_SYSTEM_REQUIRED = 0x00000001

    def _set_state(self, flags: int):
        import ctypes

        if not ctypes.windll.kernel32.SetThreadExecutionState(flags):
            raise OSError("SetThreadExecutionState failed")

    def _engage(self, blocker_id: int, kind: str):
        if not self._active:
            self._set_state(self.ES_CONTINUOUS | self.ES_SYSTEM_REQUIRED)

    def _release(self, blocker_id: int):
        if not self._active:
            self._set_state(self.ES_CONTINUOUS)


class _ProcessPowerSaveBlocker(PowerSaveBlocker):
    """
    Keeps one inhibitor child process alive while at least one id is active.

    The child is started for the first id and terminated when the last id
    is stopped. ``_release`` only signals it; waiting for the exit happens
    on a daemon thread so callers on the event loop never block.
    """

    REAP_TIMEOUT = 2

    def __init__(self):
        super().__init__()
        self._process: Optional[subprocess.Popen] = None

    def _command(self, kind: str) -> list:
        raise NotImplementedError

    def _engage(self, blocker_id: int, kind: str):
        if self._process is not None:
            return
        self._process = subprocess.Popen(
            self._command(kind),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            creationflags=SUBPROCESS_FLAGS,
        )
        log.debug(f"Inhibitor process {self._process.pid} started")

    def _release(self, blocker_id: int):
        if self._active or self._process is None:
            return
        process, self._process = self._process, None
        try:
            process.terminate()
        except OSError as e:
            log.warning(f"Failed to terminate inhibitor process {process.pid}: {e}")
        threading.Thread(target=self._reap, args=(process,), daemon=True).start()

    def _reap(self, process: subprocess.Popen):
        try:
            process.wait(timeout=self.REAP_TIMEOUT)
        except subprocess.TimeoutExpired:
            log.warning(f"Inhibitor process {process.pid} ignored SIGTERM, killing it")
            process.kill()
            process.wait()


class _LinuxPowerSaveBlocker(_ProcessPowerSaveBlocker):
    def _command(self, kind: str) -> list:
        return [
            "systemd-inhibit",
            "--what=sleep",
            f"--who={APP_NAME}",
            f"--why={kind}",
            "--mode=block",
            "sleep",
            "infinity",
        ]


class _MacPowerSaveBlocker(_ProcessPowerSaveBlocker):
    def _command(self, kind: str) -> list:
        # caffeinate exits by itself if this process dies first.
        return ["caffeinate", "-i", "-w", str(os.getpid())]


@lru_cache(maxsize=None)
def get_power_save_blocker() -> PowerSaveBlocker:
    """Factory function to get the correct blocker for the current OS."""
    if sys.platform == "win32":
        return _WindowsPowerSaveBlocker()
    if sys.platform == "linux" and shutil.which("systemd-inhibit"):
        return _LinuxPowerSaveBlocker()
    if sys.platform == "darwin" and shutil.which("caffeinate"):
        return _MacPowerSaveBlocker()
    log.warning(f"Suspend prevention not supported on '{sys.platform}', transfers will not keep the system awake.")
    return PowerSaveBlocker()


class SuspendGuard:
    """Owns at most one blocker id and gives it back exactly once."""

    def __init__(self, blocker: Optional[PowerSaveBlocker] = None, kind: str = SUSPEND_BLOCKER_KIND):
        self._blocker = blocker
        self.kind = kind
        self._blocker_id: Optional[int] = None
        self._used = False

    @property
    def held(self) -> bool:
        return self._blocker_id is not None

    def acquire(self):
        if self._used:
            return
        self._used = True
        if self._blocker is None:
            self._blocker = get_power_save_blocker()
        self._blocker_id = self._blocker.start(self.kind)

    def release(self):
        blocker_id, self._blocker_id = self._blocker_id, None
        if blocker_id is not None:
            self._blocker.stop(blocker_id)

# src/termhost/services/__init__.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

from .file_service import FileService, TransferUnit, file_service
from .platform_service import PlatformService
from .power_service import PowerSaveBlocker, SuspendGuard, get_power_save_blocker
from .transfer_service import FileDownload, FileTransfer, FileUpload, pipe_transfer

__all__ = [
    "FileService",
    "TransferUnit",
    "file_service",
    "PlatformService",
    "PowerSaveBlocker",
    "SuspendGuard",
    "get_power_save_blocker",
    "FileDownload",
    "FileTransfer",
    "FileUpload",
    "pipe_transfer",
]

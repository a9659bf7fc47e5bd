# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

"""Custom exceptions for Termhost"""


class TermhostError(Exception):
    """Base exception for Termhost"""

    pass


class ConfigurationError(TermhostError):
    """Configuration-related errors"""

    pass


class FileOperationError(TermhostError, OSError):
    """File operation errors, always tied to the path that failed"""

    def __init__(self, path, message: str):
        super().__init__(f"{message}: {path}")
        self.path = str(path)


class TransferStateError(TermhostError):
    """A transfer was used outside its open -> read/write -> close lifecycle"""

    pass


class UnsupportedOperationError(TermhostError):
    """Capability invoked on a platform that does not provide it"""

    pass

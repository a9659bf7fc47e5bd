# src/termhost/services/file_service.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import asyncio
import logging
import os
import stat
from fnmatch import fnmatch
from typing import AsyncIterator, Awaitable, FrozenSet, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

import aiofiles.os
from pydantic import BaseModel, ConfigDict

from ..core.constants import DEFAULT_IGNORE_PATTERNS
from ..core.exceptions import FileOperationError

log = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]
T = TypeVar("T")


class TransferUnit(BaseModel):
    """One regular file to transfer and where it sits below its selection root."""

    model_config = ConfigDict(frozen=True)

    absolute_path: str
    relative_path: str = ""


async def _gather_all(aws: Iterable[Awaitable[T]]) -> List[T]:
    """
    Runs *aws* concurrently and waits for every one of them.

    The first failure in argument order is raised once all have settled, so
    no sibling is left running and every error is retrieved.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class FileService:
    """Flattens a selection of files and folders into transfer units."""

    def __init__(self, ignore_patterns: Optional[Iterable[str]] = None):
        if ignore_patterns is None:
            ignore_patterns = DEFAULT_IGNORE_PATTERNS
        self.ignore_patterns: Tuple[str, ...] = tuple(ignore_patterns)

    def is_ignored(self, name: str) -> bool:
        return any(fnmatch(name, pattern) for pattern in self.ignore_patterns)

    async def _stat(self, path: str) -> os.stat_result:
        try:
            return await aiofiles.os.stat(path)
        except OSError as e:
            raise FileOperationError(path, f"Cannot stat ({e.strerror or e})") from e

    async def _listdir(self, path: str) -> List[str]:
        try:
            return sorted(await aiofiles.os.listdir(path))
        except OSError as e:
            raise FileOperationError(path, f"Cannot list directory ({e.strerror or e})") from e

    async def _scan(self, directory: str, root: str, ancestors: FrozenSet[Tuple[int, int]]) -> List[TransferUnit]:
        """
        Returns every regular file below *directory*, depth-first in name order.

        Entries are stat'ed and sibling folders scanned concurrently; gather
        keeps argument order so the result does not depend on which call
        finishes first.
        """
        names = [name for name in await self._listdir(directory) if not self.is_ignored(name)]
        paths = [os.path.join(directory, name) for name in names]
        stats = await _gather_all(self._stat(p) for p in paths)

        subdirs = []
        for path, st in zip(paths, stats):
            if not stat.S_ISDIR(st.st_mode):
                continue
            key = (st.st_dev, st.st_ino)
            if key in ancestors:
                log.warning(f"Skipping directory loop at {path}")
                continue
            subdirs.append((path, ancestors | {key}))

        subtrees = await _gather_all(self._scan(p, root, seen) for p, seen in subdirs)
        subtree_by_path = {p: units for (p, _), units in zip(subdirs, subtrees)}

        units: List[TransferUnit] = []
        for path, st in zip(paths, stats):
            if path in subtree_by_path:
                units.extend(subtree_by_path[path])
            elif stat.S_ISREG(st.st_mode):
                units.append(TransferUnit(absolute_path=path, relative_path=os.sep + os.path.relpath(path, root)))
        return units

    async def expand_root(self, root: PathLike) -> List[TransferUnit]:
        """Expands one selected path into its transfer units."""
        root = os.path.normpath(os.path.abspath(os.fspath(root)))
        st = await self._stat(root)
        if stat.S_ISREG(st.st_mode):
            return [TransferUnit(absolute_path=root, relative_path="")]
        if stat.S_ISDIR(st.st_mode):
            units = await self._scan(root, root, frozenset({(st.st_dev, st.st_ino)}))
            log.debug(f"Expanded {root} into {len(units)} file(s)")
            return units
        log.warning(f"Skipping {root}: neither a file nor a directory")
        return []

    async def iter_transfer_units(self, roots: Sequence[PathLike]) -> AsyncIterator[TransferUnit]:
        """
        Yields the units of each root in the order the roots were given.

        A root is fully expanded before any of its units is yielded, so a
        failing root raises without having produced anything, while units
        from earlier roots have already reached the caller.
        """
        for root in roots:
            for unit in await self.expand_root(root):
                yield unit

    async def expand_paths(self, roots: Sequence[PathLike]) -> List[TransferUnit]:
        return [unit async for unit in self.iter_transfer_units(roots)]


# Global instance
file_service = FileService()

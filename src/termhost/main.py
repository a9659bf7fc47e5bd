# filename: src/termhost/main.py
#!/usr/bin/env python3
"""
Termhost - Terminal Host Platform Layer
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

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .core import constants
from .core.config import get_config_manager
from .core.exceptions import TermhostError
from .core.logging_config import setup_logging
from .core.version import __app_name__, __version__
from .services.platform_service import PlatformService
from .services.transfer_service import FileDownload, pipe_transfer

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termhost",
        description="Terminal host platform layer: config persistence and local file transfers.",
    )
    parser.add_argument("--version", action="version", version=f"{__app_name__} v{__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    commands = parser.add_subparsers(dest="command", required=True)

    expand = commands.add_parser("expand", help="list the files a selection expands to")
    expand.add_argument("paths", nargs="+")

    copy = commands.add_parser("copy", help="transfer files and folders into a directory")
    copy.add_argument("paths", nargs="+")
    copy.add_argument("--dest", required=True, help="destination directory")

    config = commands.add_parser("config", help="inspect or replace the terminal configuration")
    config.add_argument("action", choices=["path", "show", "save"])
    config.add_argument("file", nargs="?", help="file whose contents to save")
    return parser


async def run_expand(platform: PlatformService, paths: List[str]) -> int:
    async for unit in platform.file_service.iter_transfer_units(paths):
        print(f"{unit.absolute_path}\t{unit.relative_path}")
    return 0


async def run_copy(platform: PlatformService, paths: List[str], dest: str) -> int:
    dest_dir = Path(dest)
    dest_dir.mkdir(parents=True, exist_ok=True)

    uploads = await platform.start_upload(paths)
    total = 0
    try:
        for upload in uploads:
            target = dest_dir / upload.name.lstrip("/\\")
            target.parent.mkdir(parents=True, exist_ok=True)
            async with FileDownload(target, upload.mode, upload.size) as download:
                moved = await pipe_transfer(upload, download)
            await upload.close()
            total += moved
            log.info(f"Copied {upload.file_path} -> {target} ({moved} bytes)")
    finally:
        for upload in uploads:
            await upload.close()
    print(f"Copied {len(uploads)} file(s), {total} bytes")
    return 0


async def run_config(platform: PlatformService, action: str, file: Optional[str]) -> int:
    if action == "path":
        print(platform.get_config_path())
    elif action == "show":
        sys.stdout.write(await platform.load_config())
    else:
        if not file:
            print("config save needs a FILE argument", file=sys.stderr)
            return 2
        content = Path(file).read_text(encoding="utf-8")
        await platform.save_config(content)
        print(f"Saved {len(content)} characters to {platform.get_config_path()}")
    return 0


async def run(args: argparse.Namespace) -> int:
    settings = get_config_manager()
    platform = PlatformService(
        ignore_patterns=settings.ignore_patterns,
        chunk_size=settings.chunk_size,
    )
    if args.command == "expand":
        return await run_expand(platform, args.paths)
    if args.command == "copy":
        return await run_copy(platform, args.paths, args.dest)
    return await run_config(platform, args.action, args.file)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for Termhost."""
    args = build_parser().parse_args(argv)
    constants.initialize_app_directories()

    level = logging.DEBUG if args.verbose else get_config_manager().get("log_level", "INFO")
    setup_logging(level)
    log.debug(f"Starting {__app_name__} v{__version__} (pid {os.getpid()})")

    try:
        return asyncio.run(run(args))
    except TermhostError as e:
        log.error(str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        log.error(f"{e}")
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

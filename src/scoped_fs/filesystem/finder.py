"""
Filename search over an admitted directory tree.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Sequence, Union

from scoped_fs.filesystem.cancellation import CancellationToken
from scoped_fs.filesystem.config import FileSystemAccessConfig
from scoped_fs.filesystem.exceptions import InvalidPathError, SearchTimeoutError
from scoped_fs.filesystem.gate import PathGate
from scoped_fs.filesystem.telemetry import LoggingTelemetry, TelemetrySink, capture
from scoped_fs.filesystem.types import NameSearchOutcome

logger = logging.getLogger(__name__)


class FilenameTreeWalker:
    """
    Finds files and directories whose name contains a pattern.

    At each level files are matched before directories are descended.
    Symlinked directories are reported but never entered.

    Usage:
        walker = FilenameTreeWalker(config)
        outcome = await walker.search_names("/workspace", "test")
        print(outcome.paths)
    """

    def __init__(
        self,
        config: FileSystemAccessConfig,
        gate: Optional[PathGate] = None,
        telemetry: Optional[TelemetrySink] = None,
    ):
        self.config = config
        self.telemetry = telemetry or LoggingTelemetry()
        self.gate = gate or PathGate.from_config(config, telemetry=self.telemetry)

    async def search_names(
        self,
        root: Union[str, Path],
        pattern: str,
        max_results: Optional[int] = None,
        max_depth: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        exclude_dirs: Optional[Sequence[str]] = None,
    ) -> NameSearchOutcome:
        """
        Search for names containing ``pattern``.

        Args:
            root: Directory to search
            pattern: Substring matched against entry names
            max_results: Result cap (default: ``max_search_results``)
            max_depth: Levels below root to descend (default: ``max_search_depth``)
            timeout_seconds: Deadline (default: ``find_timeout_seconds``)
            exclude_dirs: Names never descended (default: ``find_exclude_directories``)

        Returns:
            NameSearchOutcome with absolute paths

        Raises:
            PathDeniedError: If the root is not admitted
            InvalidPathError: If the root is not a directory
            SearchTimeoutError: If the deadline passed with nothing found
        """
        config = self.config
        max_results = max_results if max_results is not None else config.max_search_results
        max_depth = max_depth if max_depth is not None else config.max_search_depth
        timeout = timeout_seconds if timeout_seconds is not None else config.find_timeout_seconds
        excluded = set(
            exclude_dirs if exclude_dirs is not None else config.find_exclude_directories
        )

        real_root = await self.gate.require(root)
        if not os.path.isdir(real_root):
            raise InvalidPathError(real_root, "Search root is not an existing directory")

        fold = self.gate.case_policy.fold
        needle = fold(pattern)
        token = CancellationToken(timeout)
        results: list[str] = []

        async def walk(directory: str, depth: int) -> None:
            if token.cancelled or len(results) >= max_results:
                return
            await asyncio.sleep(0)

            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                logger.debug(f"Cannot list {directory}: {e}")
                return

            directories = []
            for entry in entries:
                if token.cancelled or len(results) >= max_results:
                    return
                if not self.gate.is_allowed(entry.path):
                    continue
                try:
                    is_dir = entry.is_dir(follow_symlinks=False)
                except OSError:
                    continue
                if is_dir:
                    directories.append(entry)
                elif needle in fold(entry.name):
                    results.append(entry.path)

            for entry in directories:
                if token.cancelled or len(results) >= max_results:
                    return
                if needle in fold(entry.name):
                    results.append(entry.path)
                if entry.name in excluded or depth >= max_depth:
                    continue
                await walk(entry.path, depth + 1)

        await walk(real_root, 0)

        partial = token.cancelled
        if partial and not results:
            logger.error(f"Filename search timed out after {timeout}s: {real_root}")
            capture(self.telemetry, "search_files_error", error="timeout", timeout_seconds=timeout)
            raise SearchTimeoutError(timeout, what="File search")

        logger.info(
            f"Filename search found {len(results)} paths" + (" (partial)" if partial else "")
        )
        capture(
            self.telemetry,
            "search_files_complete",
            result_count=len(results),
            max_depth=max_depth,
            partial=partial,
        )
        return NameSearchOutcome(paths=results[:max_results], partial=partial)

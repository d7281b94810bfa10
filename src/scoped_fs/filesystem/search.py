"""
Content search over an admitted directory tree.

Searches run on ripgrep when it is installed and fall back to a native
``re`` walk otherwise. Both backends produce the same SearchMatch
records, so callers cannot tell which engine answered.
"""

import asyncio
import base64
import fnmatch
import json
import logging
import os
import re
from collections import deque
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from scoped_fs.filesystem.cancellation import (
    CancellationToken,
    run_until_cancelled,
    terminate_process,
)
from scoped_fs.filesystem.config import FileSystemAccessConfig
from scoped_fs.filesystem.exceptions import (
    InvalidPathError,
    SearchError,
    SearchTimeoutError,
)
from scoped_fs.filesystem.gate import PathGate
from scoped_fs.filesystem.probe import EngineAvailabilityProbe
from scoped_fs.filesystem.telemetry import LoggingTelemetry, TelemetrySink, capture
from scoped_fs.filesystem.types import SearchMatch, SearchOutcome, SearchQuery

logger = logging.getLogger(__name__)

# Bytes inspected for a NUL byte before a file is treated as binary.
BINARY_SNIFF_BYTES = 8192

# ripgrep emits one JSON record per line; matched lines can be long.
_STREAM_LIMIT = 16 * 1024 * 1024

# Lines between deadline checks while scanning a file.
_CHECK_EVERY = 1000


@dataclass(frozen=True)
class EngineUnavailable:
    """Returned by a backend that could not run; triggers the fallback."""

    reason: str


BackendResult = Union[list[SearchMatch], EngineUnavailable]


class SearchBackend(Protocol):
    """A content search implementation."""

    name: str

    async def run(
        self, query: SearchQuery, root: str, token: CancellationToken
    ) -> BackendResult:
        """Search ``root`` until done, ``query.max_results`` or ``token`` fires."""
        ...


class RipgrepBackend:
    """
    Runs ``rg --json`` and parses its output as it arrives.

    With a gate, records for files whose real path the gate does not
    admit are dropped.
    """

    name = "ripgrep"

    def __init__(
        self,
        executable: Optional[str] = None,
        follow_symlinks: bool = False,
        kill_grace_seconds: float = 1.0,
        gate: Optional[PathGate] = None,
    ):
        self.executable = executable or "rg"
        self.follow_symlinks = follow_symlinks
        self.kill_grace_seconds = kill_grace_seconds
        self.gate = gate

    def _admits(self, path: str, seen: dict[str, bool]) -> bool:
        if self.gate is None:
            return True
        if path not in seen:
            seen[path] = self.gate.is_allowed(os.path.realpath(path))
            if not seen[path]:
                logger.warning(f"Dropping ripgrep results outside allowed directories: {path}")
        return seen[path]

    def build_command(self, query: SearchQuery, root: str) -> list[str]:
        """Build the rg argument list for a query."""
        cmd = [
            self.executable,
            "--json",
            "--line-number",
            "--no-ignore",
            "--max-count",
            str(query.max_results),
        ]

        if query.ignore_case:
            cmd.append("-i")
        if query.max_depth is not None:
            cmd.extend(["--max-depth", str(query.max_depth)])
        if query.context_lines > 0:
            cmd.extend(["-C", str(query.context_lines)])
        if query.include_hidden:
            cmd.append("--hidden")
        if self.follow_symlinks:
            cmd.append("-L")
        if query.file_pattern:
            cmd.extend(["-g", query.file_pattern])
        for name in query.exclude_dirs:
            cmd.extend(["-g", f"!{name}/"])

        cmd.extend(["--", query.pattern, root])
        return cmd

    @staticmethod
    def parse_record(raw: bytes) -> Optional[SearchMatch]:
        """
        Parse one line of ``rg --json`` output.

        Returns None for records other than match/context.

        Raises:
            ValueError: If the line is not a well-formed record
        """
        record = json.loads(raw)
        if record.get("type") not in ("match", "context"):
            return None

        data = record["data"]
        return SearchMatch(
            file=_rg_text(data["path"]),
            line=int(data["line_number"]),
            text=_rg_text(data["lines"]).strip(),
        )

    async def run(
        self, query: SearchQuery, root: str, token: CancellationToken
    ) -> BackendResult:
        cmd = self.build_command(query, root)
        logger.debug(f"Running ripgrep: {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            return EngineUnavailable(f"cannot start ripgrep: {e}")

        matches: list[SearchMatch] = []
        admitted: dict[str, bool] = {}
        stderr_task = asyncio.ensure_future(proc.stderr.read())

        async def consume() -> None:
            async for raw in proc.stdout:
                match = self.parse_record(raw)
                if match is None or not self._admits(match.file, admitted):
                    continue
                matches.append(match)
                if len(matches) >= query.max_results:
                    return

        try:
            finished = await run_until_cancelled(consume(), token)
            if not finished or len(matches) >= query.max_results:
                await terminate_process(proc, self.kill_grace_seconds)
                return matches

            returncode = await proc.wait()
            if returncode not in (0, 1):
                stderr = (await stderr_task).decode("utf-8", errors="replace").strip()
                return EngineUnavailable(f"ripgrep exited with {returncode}: {stderr}")
            return matches
        except (ValueError, KeyError, TypeError) as e:
            await terminate_process(proc, self.kill_grace_seconds)
            return EngineUnavailable(f"malformed ripgrep output: {e}")
        finally:
            if proc.returncode is None:
                await terminate_process(proc, self.kill_grace_seconds)
            if not stderr_task.done():
                stderr_task.cancel()
            await asyncio.gather(stderr_task, return_exceptions=True)


def _rg_text(value: dict) -> str:
    """rg encodes non-UTF-8 data as ``{"bytes": base64}`` instead of ``{"text": ...}``."""
    if "text" in value:
        return value["text"]
    return base64.b64decode(value["bytes"]).decode("utf-8", errors="replace")


class NativeSearchBackend:
    """Walks the tree in-process and matches lines with ``re``."""

    name = "native"

    def __init__(self, gate: PathGate, follow_symlinks: bool = False):
        self.gate = gate
        self.follow_symlinks = follow_symlinks

    async def run(
        self, query: SearchQuery, root: str, token: CancellationToken
    ) -> BackendResult:
        flags = re.IGNORECASE if query.ignore_case else 0
        regex = re.compile(query.pattern, flags)
        excluded = set(query.exclude_dirs)
        matches: list[SearchMatch] = []
        visited = {os.path.realpath(root)}

        async def walk(directory: str, depth: int) -> None:
            if token.cancelled or len(matches) >= query.max_results:
                return
            if query.max_depth is not None and depth > query.max_depth:
                return
            await asyncio.sleep(0)

            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                logger.debug(f"Cannot list {directory}: {e}")
                return

            subdirectories = []
            for entry in entries:
                if token.cancelled or len(matches) >= query.max_results:
                    return
                if entry.name.startswith(".") and not query.include_hidden:
                    continue

                path = entry.path
                if entry.is_symlink():
                    if not self.follow_symlinks:
                        continue
                    real = os.path.realpath(path)
                    if not self.gate.is_allowed(real):
                        continue
                elif not self.gate.is_allowed(path):
                    continue

                try:
                    is_dir = entry.is_dir()
                except OSError:
                    continue

                if is_dir:
                    if entry.name in excluded:
                        continue
                    real = os.path.realpath(path)
                    if real in visited:
                        continue
                    visited.add(real)
                    subdirectories.append(path)
                elif entry.is_file():
                    if query.file_pattern and not fnmatch.fnmatchcase(
                        entry.name, query.file_pattern
                    ):
                        continue
                    limit = query.max_results - len(matches)
                    matches.extend(
                        await asyncio.to_thread(
                            self._search_file, path, regex, query.context_lines, limit, token
                        )
                    )

            for subdirectory in subdirectories:
                await walk(subdirectory, depth + 1)

        await walk(root, 1)
        return matches[: query.max_results]

    @staticmethod
    def _search_file(
        path: str,
        regex: re.Pattern,
        context_lines: int,
        limit: int,
        token: CancellationToken,
    ) -> list[SearchMatch]:
        """
        Stream one file and collect matching lines with their context.

        Lines are split on ``\\n`` only. Stops at ``limit`` records or
        when the token fires.
        """
        found: list[SearchMatch] = []
        before: deque[SearchMatch] = deque(maxlen=context_lines)
        after = 0

        try:
            with open(path, "rb") as fh:
                if b"\0" in fh.read(BINARY_SNIFF_BYTES):
                    return found
                fh.seek(0)

                for number, raw in enumerate(fh, start=1):
                    if number % _CHECK_EVERY == 0 and token.cancelled:
                        break
                    line = raw.decode("utf-8", errors="replace")
                    if line.endswith("\n"):
                        line = line[:-1]
                    record = SearchMatch(file=path, line=number, text=line.strip())

                    if regex.search(line):
                        found.extend(before)
                        before.clear()
                        found.append(record)
                        after = context_lines
                    elif after > 0:
                        found.append(record)
                        after -= 1
                    else:
                        before.append(record)

                    if len(found) >= limit:
                        break
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")

        return found[:limit]


class ContentSearchEngine:
    """
    Regex search across files below an allowed directory.

    Usage:
        engine = ContentSearchEngine(config)
        outcome = await engine.search(
            SearchQuery(root="/workspace", pattern="def main", file_pattern="*.py")
        )
        for match in outcome:
            print(match.file, match.line, match.text)
    """

    def __init__(
        self,
        config: FileSystemAccessConfig,
        gate: Optional[PathGate] = None,
        probe: Optional[EngineAvailabilityProbe] = None,
        telemetry: Optional[TelemetrySink] = None,
        ripgrep: Optional[SearchBackend] = None,
        native: Optional[SearchBackend] = None,
    ):
        self.config = config
        self.telemetry = telemetry or LoggingTelemetry()
        self.gate = gate or PathGate.from_config(config, telemetry=self.telemetry)
        self.probe = probe or EngineAvailabilityProbe.from_config(config, self.telemetry)
        self.ripgrep = ripgrep or RipgrepBackend(
            executable=config.ripgrep_path,
            follow_symlinks=config.follow_symlinks,
            kill_grace_seconds=config.kill_grace_seconds,
            gate=self.gate,
        )
        self.native = native or NativeSearchBackend(
            self.gate, follow_symlinks=config.follow_symlinks
        )

    def query(self, root: str, pattern: str, **options) -> SearchQuery:
        """Build a query with the configured defaults filled in."""
        options.setdefault("max_results", self.config.max_search_results)
        options.setdefault("timeout_seconds", self.config.search_timeout_seconds)
        options.setdefault("exclude_dirs", list(self.config.search_exclude_directories))
        return SearchQuery(root=root, pattern=pattern, **options)

    async def search(self, query: SearchQuery) -> SearchOutcome:
        """
        Run a content search.

        Args:
            query: Search parameters

        Returns:
            SearchOutcome; ``partial`` is set when the deadline cut the search short

        Raises:
            PathDeniedError: If the root is not admitted
            InvalidPathError: If the root is missing or not a directory
            SearchError: If the pattern is not a valid regular expression
            SearchTimeoutError: If the deadline passed before any match was found
        """
        try:
            re.compile(query.pattern)
        except re.error as e:
            raise SearchError(f"Invalid regex pattern: {e}")

        root = await self.gate.require(query.root)
        if not os.path.isdir(root):
            raise InvalidPathError(root, "Search root is not an existing directory")

        token = CancellationToken(query.timeout_seconds)
        backend: SearchBackend = self.native
        result: Optional[BackendResult] = None

        if await self.probe.is_available():
            result = await self.ripgrep.run(query, root, token)
            if isinstance(result, EngineUnavailable):
                logger.warning(f"ripgrep failed, using native search: {result.reason}")
                capture(self.telemetry, "search_engine_fallback", reason=result.reason)
                result = None
            else:
                backend = self.ripgrep

        if result is None:
            result = await self.native.run(query, root, token)
            if isinstance(result, EngineUnavailable):
                raise SearchError(f"Search failed: {result.reason}")

        partial = token.cancelled
        if partial and not result:
            logger.error(f"Search timed out after {query.timeout_seconds}s: {root}")
            capture(
                self.telemetry,
                "search_code_error",
                error="timeout",
                timeout_seconds=query.timeout_seconds,
            )
            raise SearchTimeoutError(query.timeout_seconds)

        logger.info(
            f"{backend.name} search found {len(result)} matches"
            + (" (partial)" if partial else "")
        )
        capture(
            self.telemetry,
            "search_code_complete",
            engine=backend.name,
            result_count=len(result),
            partial=partial,
            max_results=query.max_results,
        )
        return SearchOutcome(matches=result, partial=partial, engine=backend.name)

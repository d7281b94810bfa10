"""
Unified LLM filesystem tools interface.

Exposes the scoped reader and searches through function calling
(OpenAI function calling format). Every tool returns a dict; failures
are reported as ``{"success": False, "error", "error_type"}`` instead of
being raised to the model.
"""

import logging
from typing import Any, Optional

from scoped_fs.filesystem.config import FileSystemAccessConfig
from scoped_fs.filesystem.exceptions import FileSystemError, SearchTimeoutError
from scoped_fs.filesystem.finder import FilenameTreeWalker
from scoped_fs.filesystem.gate import PathGate
from scoped_fs.filesystem.probe import EngineAvailabilityProbe
from scoped_fs.filesystem.reader import RestrictedFileReader
from scoped_fs.filesystem.search import ContentSearchEngine
from scoped_fs.filesystem.telemetry import LoggingTelemetry, TelemetrySink

logger = logging.getLogger(__name__)


def _failure(error: Exception, **context: Any) -> dict[str, Any]:
    return {
        "success": False,
        **context,
        "error": str(error),
        "error_type": type(error).__name__,
    }


class LLMFileSystemTools:
    """
    Unified filesystem interface for LLM function calling.

    All components share one PathGate and one engine probe, so a single
    instance serves a whole agent session.

    Usage:
        config = FileSystemAccessConfig(
            allowed_directories=[Path("/tmp/repos")],
        )
        tools = LLMFileSystemTools(config)

        # Get tool schemas for LLM
        schemas = tools.get_tool_schemas()

        # Execute tool call
        result = await tools.execute_tool(
            tool_name="read_file",
            arguments={"path": "/tmp/repos/main.py", "offset": -20}
        )
    """

    def __init__(
        self,
        config: FileSystemAccessConfig,
        telemetry: Optional[TelemetrySink] = None,
        probe: Optional[EngineAvailabilityProbe] = None,
    ):
        """
        Initialize LLM filesystem tools.

        Args:
            config: Filesystem access configuration
            telemetry: Event sink shared by all components
            probe: ripgrep availability probe (one per instance if omitted)
        """
        self.config = config
        self.telemetry = telemetry or LoggingTelemetry()
        self.gate = PathGate.from_config(config, telemetry=self.telemetry)
        self.reader = RestrictedFileReader(config, gate=self.gate, telemetry=self.telemetry)
        self.search = ContentSearchEngine(
            config, gate=self.gate, probe=probe, telemetry=self.telemetry
        )
        self.finder = FilenameTreeWalker(config, gate=self.gate, telemetry=self.telemetry)

    def get_tool_schemas(self) -> list[dict[str, Any]]:
        """
        Get OpenAI function calling schemas for all available tools.

        Returns:
            List of tool schemas in OpenAI format
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": "read_file",
                    "description": "Read lines from a file. Use a negative offset to read the "
                    "last lines of a file (e.g. -20 for the last 20 lines). Images are "
                    "returned as base64.",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "path": {
                                "type": "string",
                                "description": "Absolute path to the file",
                            },
                            "offset": {
                                "type": "integer",
                                "description": "First line to read (0-based), negative to read from the end (default: 0)",
                            },
                            "length": {
                                "type": "integer",
                                "description": f"Maximum lines to read (default: {self.config.file_read_line_limit})",
                            },
                        },
                        "required": ["path"],
                    },
                },
            },
            {
                "type": "function",
                "function": {
                    "name": "read_multiple_files",
                    "description": "Read several files at once. Files that fail are reported "
                    "individually.",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "paths": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Paths of the files to read",
                            },
                        },
                        "required": ["paths"],
                    },
                },
            },
            {
                "type": "function",
                "function": {
                    "name": "get_file_info",
                    "description": "Get size, timestamps, permissions and line count of a file "
                    "or directory.",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "path": {
                                "type": "string",
                                "description": "Path to inspect",
                            },
                        },
                        "required": ["path"],
                    },
                },
            },
            {
                "type": "function",
                "function": {
                    "name": "list_directory",
                    "description": "List a directory. Entries are prefixed with [DIR] or [FILE].",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "path": {
                                "type": "string",
                                "description": "Directory path to list",
                            },
                        },
                        "required": ["path"],
                    },
                },
            },
            {
                "type": "function",
                "function": {
                    "name": "search_code",
                    "description": "Search file contents with a regular expression. "
                    "Returns matching lines with line numbers.",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "path": {
                                "type": "string",
                                "description": "Directory to search in",
                            },
                            "pattern": {
                                "type": "string",
                                "description": "Regular expression pattern to search for",
                            },
                            "file_pattern": {
                                "type": "string",
                                "description": "File glob pattern (e.g., '*.py', '*.js')",
                            },
                            "ignore_case": {
                                "type": "boolean",
                                "description": "Case-insensitive search (default: true)",
                            },
                            "max_results": {
                                "type": "integer",
                                "description": f"Maximum results (default: {self.config.max_search_results})",
                            },
                            "include_hidden": {
                                "type": "boolean",
                                "description": "Search hidden files and directories (default: false)",
                            },
                            "max_depth": {
                                "type": "integer",
                                "description": "Maximum directory depth below the path (default: unlimited)",
                            },
                            "exclude_dirs": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Directory names to skip (default: "
                                f"{', '.join(self.config.search_exclude_directories)})",
                            },
                            "context_lines": {
                                "type": "integer",
                                "description": "Lines of context around each match (default: 0)",
                            },
                            "timeout_seconds": {
                                "type": "number",
                                "description": f"Search timeout (default: {self.config.search_timeout_seconds})",
                            },
                        },
                        "required": ["path", "pattern"],
                    },
                },
            },
            {
                "type": "function",
                "function": {
                    "name": "search_files",
                    "description": "Find files and directories whose name contains a pattern "
                    "(case-insensitive on Windows and macOS).",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "path": {
                                "type": "string",
                                "description": "Directory to search in",
                            },
                            "pattern": {
                                "type": "string",
                                "description": "Substring to look for in names",
                            },
                            "max_results": {
                                "type": "integer",
                                "description": f"Maximum results (default: {self.config.max_search_results})",
                            },
                            "max_depth": {
                                "type": "integer",
                                "description": f"Maximum depth to search (default: {self.config.max_search_depth})",
                            },
                            "timeout_seconds": {
                                "type": "number",
                                "description": f"Search timeout (default: {self.config.find_timeout_seconds})",
                            },
                            "exclude_dirs": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Directory names to skip",
                            },
                        },
                        "required": ["path", "pattern"],
                    },
                },
            },
            {
                "type": "function",
                "function": {
                    "name": "check_file_access",
                    "description": "Check if a file can be accessed without reading it. "
                    "Returns whether access is allowed and the reason.",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "path": {
                                "type": "string",
                                "description": "File path to check",
                            },
                        },
                        "required": ["path"],
                    },
                },
            },
        ]

    async def execute_tool(
        self, tool_name: str, arguments: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Execute a tool call from an LLM.

        Args:
            tool_name: Name of the tool to execute
            arguments: Tool arguments (from LLM function call)

        Returns:
            Tool execution result as a dict

        Raises:
            ValueError: If tool name is unknown
        """
        if tool_name == "read_file":
            return await self._read_file(**arguments)
        elif tool_name == "read_multiple_files":
            return await self._read_multiple_files(**arguments)
        elif tool_name == "get_file_info":
            return await self._get_file_info(**arguments)
        elif tool_name == "list_directory":
            return await self._list_directory(**arguments)
        elif tool_name == "search_code":
            return await self._search_code(**arguments)
        elif tool_name == "search_files":
            return await self._search_files(**arguments)
        elif tool_name == "check_file_access":
            return await self._check_file_access(**arguments)
        else:
            raise ValueError(f"Unknown tool: {tool_name}")

    async def _read_file(
        self, path: str, offset: int = 0, length: Optional[int] = None
    ) -> dict[str, Any]:
        """Read file tool implementation."""
        try:
            result = await self.reader.read_file(path, offset=offset, length=length)
            return {"success": True, "path": path, **result.to_dict()}
        except (FileSystemError, OSError) as e:
            logger.warning(f"LLM read_file failed: {e}")
            return _failure(e, path=path)

    async def _read_multiple_files(self, paths: list[str]) -> dict[str, Any]:
        """Read multiple files tool implementation."""
        files = await self.reader.read_multiple_files(paths)
        failed = sum(1 for f in files if "error" in f)
        return {
            "success": True,
            "files": files,
            "count": len(files),
            "failed": failed,
        }

    async def _get_file_info(self, path: str) -> dict[str, Any]:
        """File info tool implementation."""
        try:
            info = await self.reader.get_file_info(path)
            return {"success": True, "path": path, "info": info}
        except (FileSystemError, OSError) as e:
            logger.warning(f"LLM get_file_info failed: {e}")
            return _failure(e, path=path)

    async def _list_directory(self, path: str) -> dict[str, Any]:
        """List directory tool implementation."""
        try:
            entries = await self.reader.list_directory(path)
            return {
                "success": True,
                "path": path,
                "entries": entries,
                "count": len(entries),
            }
        except (FileSystemError, OSError) as e:
            logger.warning(f"LLM list_directory failed: {e}")
            return _failure(e, path=path)

    async def _search_code(
        self,
        path: str,
        pattern: str,
        file_pattern: Optional[str] = None,
        ignore_case: bool = True,
        max_results: Optional[int] = None,
        include_hidden: bool = False,
        context_lines: int = 0,
        timeout_seconds: Optional[float] = None,
        max_depth: Optional[int] = None,
        exclude_dirs: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """Search code tool implementation."""
        options: dict[str, Any] = {
            "file_pattern": file_pattern,
            "ignore_case": ignore_case,
            "include_hidden": include_hidden,
            "context_lines": context_lines,
        }
        if max_results is not None:
            options["max_results"] = max_results
        if timeout_seconds is not None:
            options["timeout_seconds"] = timeout_seconds
        if max_depth is not None:
            options["max_depth"] = max_depth
        if exclude_dirs is not None:
            options["exclude_dirs"] = exclude_dirs

        try:
            query = self.search.query(path, pattern, **options)
            outcome = await self.search.search(query)
        except SearchTimeoutError as e:
            logger.warning(f"LLM search_code timed out: {e}")
            return _failure(e, path=path, pattern=pattern)
        except (FileSystemError, OSError, ValueError) as e:
            logger.warning(f"LLM search_code failed: {e}")
            return _failure(e, path=path, pattern=pattern)

        matches = [m.to_dict() for m in outcome]
        if not matches:
            message = (
                f'No matches found for pattern "{pattern}" in {path}\n\n'
                f"Search options used:\n"
                f"- Max results: {query.max_results}\n"
                f"- Timeout: {query.timeout_seconds}s\n"
                f"- Excluded directories: {', '.join(query.exclude_dirs)}"
            )
        else:
            message = f'Found {len(matches)} matches for pattern "{pattern}"'
            if len(matches) >= query.max_results:
                message += (
                    f"\n\nResults limited to {query.max_results}. "
                    f"Use max_results to see more."
                )
        if outcome.partial:
            message += (
                "\n\nSearch timed out, results are partial. Narrow the search with path, "
                "file_pattern, max_depth or exclude_dirs, or raise timeout_seconds."
            )

        return {
            "success": True,
            "path": path,
            "pattern": pattern,
            "matches": matches,
            "count": len(matches),
            "partial": outcome.partial,
            "engine": outcome.engine,
            "message": message,
        }

    async def _search_files(
        self,
        path: str,
        pattern: str,
        max_results: Optional[int] = None,
        max_depth: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        exclude_dirs: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """Search files tool implementation."""
        try:
            outcome = await self.finder.search_names(
                path,
                pattern,
                max_results=max_results,
                max_depth=max_depth,
                timeout_seconds=timeout_seconds,
                exclude_dirs=exclude_dirs,
            )
        except (FileSystemError, OSError) as e:
            logger.warning(f"LLM search_files failed: {e}")
            return _failure(e, path=path, pattern=pattern)

        depth = max_depth if max_depth is not None else self.config.max_search_depth
        limit = max_results if max_results is not None else self.config.max_search_results
        if not outcome.paths:
            message = f'No files found matching "{pattern}" in {path}'
        else:
            message = f"Found {len(outcome)} paths"
            if len(outcome) >= limit:
                message += f"\n\nResults limited to {limit}. Use max_results to see more."
            message += f"\nSearched to depth {depth}. Use max_depth to search deeper."
        if outcome.partial:
            message += (
                "\n\nSearch timed out, results are partial. Try reducing max_depth, "
                "adding excluded directories, or increasing timeout_seconds."
            )

        return {
            "success": True,
            "path": path,
            "pattern": pattern,
            "files": outcome.paths,
            "count": len(outcome),
            "partial": outcome.partial,
            "message": message,
        }

    async def _check_file_access(self, path: str) -> dict[str, Any]:
        """Check file access tool implementation."""
        can_access, reason = await self.reader.check_access(path)
        return {
            "success": True,
            "path": path,
            "can_access": can_access,
            "reason": reason,
        }

    def get_summary(self) -> dict[str, Any]:
        """
        Get a summary of the filesystem access configuration.

        Returns:
            Dict with configuration summary
        """
        return {
            "allowed_directories": list(self.gate.allowed_directories),
            "case_policy": self.gate.case_policy.value,
            "file_read_line_limit": self.config.file_read_line_limit,
            "max_file_size_mb": self.config.max_file_size_bytes / (1024 * 1024),
            "max_search_results": self.config.max_search_results,
            "search_timeout_seconds": self.config.search_timeout_seconds,
            "find_timeout_seconds": self.config.find_timeout_seconds,
            "follow_symlinks": self.config.follow_symlinks,
        }

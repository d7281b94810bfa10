"""
CLI module for scoped-fs.

Provides a command-line interface for reading and searching files
under the configured allowed directories.
"""

from scoped_fs.cli.main import cli

__all__ = ["cli"]

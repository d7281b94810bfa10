"""
Settings and configuration for scoped-fs.

Example:
    ```python
    from scoped_fs.settings import load_config

    # From a file
    config = load_config("~/.scoped-fs/config.yaml")

    # From SCOPED_FS_* environment variables
    config = load_config()
    print(config.filesystem.allowed_directories)
    ```
"""

from scoped_fs.settings.config import (
    ScopedFsConfig,
    ScopedFsSettings,
    load_config,
)

__all__ = [
    "ScopedFsConfig",
    "ScopedFsSettings",
    "load_config",
]

"""
MIME type classification for files being read.
"""

import mimetypes
from pathlib import Path
from typing import Protocol, Union

IMAGE_MIME_TYPES = {
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
}


class MimeClassifier(Protocol):
    """Maps a path to ``(mime_type, is_image)``."""

    def classify(self, path: Union[str, Path]) -> tuple[str, bool]:
        ...


class ExtensionMimeClassifier:
    """Guesses the MIME type from the file extension."""

    def __init__(self, default: str = "text/plain"):
        self.default = default

    def classify(self, path: Union[str, Path]) -> tuple[str, bool]:
        mime_type, _ = mimetypes.guess_type(str(path))
        mime_type = mime_type or self.default
        return mime_type, mime_type in IMAGE_MIME_TYPES

"""
File store backing the /files/ endpoint.

A flat directory of named blobs. Names are single path components; anything
that could escape the directory is rejected.
"""

import logging
import os
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class FileStoreError(Exception):
    """Read or write failed at the filesystem level."""
    pass


class FileNotFound(FileStoreError):
    """No blob exists under the requested name."""
    pass


class InvalidFileName(FileStoreError):
    """Name is empty, absolute, or contains a path separator."""
    pass


class FileStore:
    """Thin get/put interface over a directory of named blobs."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _resolve(self, name: str) -> Path:
        if not name or name in (".", ".."):
            raise InvalidFileName(f"Invalid file name: {name!r}")
        if "/" in name or "\\" in name or "\x00" in name or os.path.isabs(name):
            raise InvalidFileName(f"Invalid file name: {name!r}")
        return self.directory / name

    def read(self, name: str) -> bytes:
        """
        Return the bytes stored under ``name``.

        Raises:
            InvalidFileName: If the name is not a plain file name
            FileNotFound: If nothing is stored under the name
            FileStoreError: On any other I/O failure
        """
        path = self._resolve(name)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise FileNotFound(f"File not found: {name}")
        except OSError as e:
            raise FileStoreError(f"Error reading {name}: {e}") from e

    def write(self, name: str, data: bytes) -> None:
        """
        Store ``data`` under ``name``, creating the directory if missing.

        Raises:
            InvalidFileName: If the name is not a plain file name
            FileStoreError: If the directory or file cannot be written
        """
        path = self._resolve(name)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise FileStoreError(f"Error writing {name}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes as {path}")

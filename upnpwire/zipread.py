"""Reading files, and ZIP files nested in ZIP files, from an archive."""

from __future__ import annotations

import io
import os
import zipfile
from typing import IO, BinaryIO, Union


class ZipRead:
    """A read-only ZIP archive."""

    def __init__(self, archive: zipfile.ZipFile) -> None:
        self.archive = archive

    @classmethod
    def from_file(cls, file: Union[str, os.PathLike, BinaryIO]) -> "ZipRead":
        """Open an archive from a path or a seekable binary file."""
        return cls(zipfile.ZipFile(file))

    @classmethod
    def from_bytes(cls, data: bytes) -> "ZipRead":
        """Open an archive held in memory."""
        return cls(zipfile.ZipFile(io.BytesIO(bytes(data))))

    def open(self, path: str) -> IO[bytes]:
        """Open a member of the archive for reading."""
        try:
            return self.archive.open(path)
        except KeyError as exc:
            raise FileNotFoundError(f"open {path}: file does not exist") from exc

    def open_zip(self, path: str) -> "ZipRead":
        """Open a ZIP file stored inside this archive."""
        with self.open(path) as member:
            return type(self).from_bytes(member.read())

    def close(self) -> None:
        self.archive.close()

    def __enter__(self) -> "ZipRead":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
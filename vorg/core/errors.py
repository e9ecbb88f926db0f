# vorg/core/errors.py
# One exception class per failure kind. Each carries the fields needed to
# render its message so callers can branch on `kind` (or the class) instead
# of comparing strings.

from __future__ import annotations
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union

PathLike = Union[str, Path]


class ErrorKind(Enum):
    FILE_NOT_FOUND = "file_not_found"
    STORE_FOLDER = "store_folder"
    THUMBNAIL_FOLDER = "thumbnail_folder"
    CLASSIFY = "classify"
    IO = "io"
    DATABASE = "database"
    UNSUPPORTED = "unsupported"
    DUPLICATE = "duplicate"
    WRONG_ARGUMENTS = "wrong_arguments"
    TOOL_NOT_FOUND = "tool_not_found"


class VorgError(Exception):
    kind: ErrorKind

    def message(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.message()


class MissingFileError(VorgError):
    kind = ErrorKind.FILE_NOT_FOUND

    def __init__(self, path: PathLike) -> None:
        super().__init__(path)
        self.path = Path(path)

    def message(self) -> str:
        return f"The file to import cannot be found: {self.path}."


class StoreFolderError(VorgError):
    kind = ErrorKind.STORE_FOLDER

    def __init__(self, path: PathLike) -> None:
        super().__init__(path)
        self.path = Path(path)

    def message(self) -> str:
        return f"File store does not exist or is not a directory at {self.path}."


class ThumbnailFolderError(VorgError):
    kind = ErrorKind.THUMBNAIL_FOLDER

    def __init__(self, path: PathLike) -> None:
        super().__init__(path)
        self.path = Path(path)

    def message(self) -> str:
        return f"Thumbnail store does not exist or is not a directory at {self.path}."


class ClassifyError(VorgError):
    kind = ErrorKind.CLASSIFY

    def __init__(self, path: PathLike, reason: str) -> None:
        super().__init__(path, reason)
        self.path = Path(path)
        self.reason = reason

    def message(self) -> str:
        return f"Failed to classify {self.path}: {self.reason}"


class StorageIOError(VorgError):
    kind = ErrorKind.IO

    def __init__(self, reason: str, path: Optional[PathLike] = None) -> None:
        super().__init__(reason, path)
        self.reason = reason
        self.path = Path(path) if path is not None else None

    @classmethod
    def from_os_error(cls, err: OSError, path: Optional[PathLike] = None) -> "StorageIOError":
        where = path if path is not None else getattr(err, "filename", None)
        return cls(err.strerror or str(err), where)

    def message(self) -> str:
        if self.path is None:
            return self.reason
        return f"{self.reason}: {self.path}"


class MissingToolError(VorgError):
    kind = ErrorKind.TOOL_NOT_FOUND

    def __init__(self, tool: str, needed_for: Sequence[str]) -> None:
        super().__init__(tool, needed_for)
        self.tool = tool
        self.needed_for = list(needed_for)

    def message(self) -> str:
        return (
            f"{self.tool} not found on PATH. It is needed to classify "
            f"{', '.join(self.needed_for)}; install it or limit [formats] to image types."
        )


class DatabaseError(VorgError):
    kind = ErrorKind.DATABASE

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    def message(self) -> str:
        return self.reason


class UnsupportedTypeError(VorgError):
    kind = ErrorKind.UNSUPPORTED

    def __init__(self, path: PathLike, mime_type: str) -> None:
        super().__init__(path, mime_type)
        self.path = Path(path)
        self.mime_type = mime_type

    def message(self) -> str:
        return f"File with type {self.mime_type} is not supported: {self.path}."


class DuplicateItemError(VorgError):
    kind = ErrorKind.DUPLICATE

    def __init__(self, hash_hex: str) -> None:
        super().__init__(hash_hex)
        self.hash = hash_hex

    def message(self) -> str:
        return "The item to import already exists in the database."


USAGE = """Usage:
    vorg import [vorg repo path] [file or folder to import]
    vorg check [vorg repo path]
    vorg list [vorg repo path]
    vorg serve [vorg repo path]"""


class WrongArgumentsError(VorgError):
    kind = ErrorKind.WRONG_ARGUMENTS

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail

    def message(self) -> str:
        return USAGE

# vorg/repositories/store.py
# Content-addressed file store: <root>/<hash[:2]>/<hash[2:]>.<ext>

from __future__ import annotations
import errno
import os
import shutil
from pathlib import Path
from typing import List, NamedTuple, Protocol, Tuple

from vorg.core.errors import StorageIOError
from vorg.core.logs import LOGGER
from vorg.utils.hashing import DEFAULT_CHUNK, sha224_file

StoreEntry = Tuple[str, str]  # (hash, ext)


class HashMismatch(NamedTuple):
    claimed: str
    actual: str


class FileStore(Protocol):
    def path_for(self, hash_hex: str, ext: str) -> Path: ...
    def place(self, source: Path, hash_hex: str, ext: str) -> Path: ...
    def walk(self) -> Tuple[List[StoreEntry], List[HashMismatch]]: ...


class DirectoryFileStore:
    """Places files by content hash under `root`, sharded by the first two hex chars."""

    def __init__(self, root: Path, chunk_size: int = DEFAULT_CHUNK) -> None:
        self.root = Path(root)
        self.chunk_size = chunk_size

    def path_for(self, hash_hex: str, ext: str) -> Path:
        name = hash_hex[2:] + (f".{ext}" if ext else "")
        return self.root / hash_hex[:2] / name

    def place(self, source: Path, hash_hex: str, ext: str) -> Path:
        """
        Move `source` into the store. Rename when possible; across devices
        fall back to copy + delete (not atomic). Other failures raise
        StorageIOError.
        """
        source = Path(source)
        dest = self.path_for(hash_hex, ext)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError.from_os_error(e, dest.parent) from e

        try:
            source.rename(dest)
        except OSError as e1:
            if e1.errno != errno.EXDEV:
                raise StorageIOError.from_os_error(e1, source) from e1
            LOGGER.debug("Cross-device move, copying %s -> %s", source, dest)
            try:
                shutil.copy2(source, dest)
                source.unlink()
            except OSError as e2:
                raise StorageIOError.from_os_error(e2, source) from e2
        return dest

    def walk(self) -> Tuple[List[StoreEntry], List[HashMismatch]]:
        """
        Every stored file as (claimed hash, ext), where the claimed hash is
        shard dir name + file stem. Files whose bytes hash to something else
        are also reported as HashMismatch. Order is unspecified.
        """
        found: List[StoreEntry] = []
        wrong: List[HashMismatch] = []

        def _raise(err: OSError) -> None:
            raise err

        try:
            for root, dirs, files in os.walk(self.root, onerror=_raise):
                for name in files:
                    p = Path(root) / name
                    claimed = p.parent.name + p.stem
                    ext = p.suffix[1:]
                    LOGGER.debug("Checking %s", claimed)
                    actual = sha224_file(p, self.chunk_size)
                    if actual != claimed:
                        wrong.append(HashMismatch(claimed, actual))
                    found.append((claimed, ext))
        except OSError as e:
            raise StorageIOError.from_os_error(e) from e
        return found, wrong

# vorg/services/repo.py
# Repository = metadata index + content-addressed store + classifier.
#
# Layout on disk:
#   <repo>/vorg.db                         relational index
#   <repo>/store/<hash[:2]>/<hash[2:]>.ext  imported files
#   <repo>/thumbnail/                      reserved

from __future__ import annotations
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from vorg.core.config import Settings
from vorg.core.errors import (
    ErrorKind, MissingFileError, StorageIOError, StoreFolderError,
    ThumbnailFolderError, UnsupportedTypeError, VorgError,
)
from vorg.core.logs import import_logger
from vorg.repositories.db import Collection, Item, MetadataStore, SqliteMetadataStore
from vorg.repositories.store import DirectoryFileStore, FileStore, StoreEntry
from vorg.services.classify import Classifier, FileClassifier, resolve_type
from vorg.utils.hashing import sha224_file

DB_NAME = "vorg.db"
STORE_DIR = "store"
THUMBNAIL_DIR = "thumbnail"


@dataclass
class ImportStats:
    source: str
    import_id: str
    scanned: int = 0
    imported: int = 0
    duplicates: int = 0
    unsupported: int = 0
    failed: int = 0    # other suppressed failures (classification etc.)
    skipped: int = 0   # symlinks, fifos, sockets, devices

    def summary(self) -> str:
        return (
            f"scanned={self.scanned}, imported={self.imported}, "
            f"duplicates={self.duplicates}, unsupported={self.unsupported}, failed={self.failed}, "
            f"skipped={self.skipped}"
        )


def lossy_str(p: Path) -> str:
    """Path as text; bytes that are not UTF-8 become U+FFFD."""
    return os.fsencode(p).decode("utf-8", "replace")


def reconcile(db_entries: Sequence[StoreEntry], store_entries: Sequence[StoreEntry]) -> List[str]:
    """
    Two-pointer merge of (hash, ext) lists, both ascending by hash.
    Returns one report line per divergence, in hash order.
    """
    lines: List[str] = []
    i = j = 0
    while i < len(db_entries) and j < len(store_entries):
        db_hash, db_ext = db_entries[i]
        store_hash, store_ext = store_entries[j]
        if db_hash == store_hash:
            i += 1
            j += 1
            # ext is only comparable once the hashes match
            if db_ext != store_ext:
                lines.append(f"ext: different extensions: {db_ext} in db but {store_ext} in store")
            continue
        if db_hash < store_hash:
            lines.append(f"store: file not found in store: {db_hash}")
            i += 1
            continue
        lines.append(f"store: redundant file in store: {store_hash}")
        j += 1
    for db_hash, _ in db_entries[i:]:
        lines.append(f"store: file not found in store: {db_hash}")
    for store_hash, _ in store_entries[j:]:
        lines.append(f"store: redundant file in store: {store_hash}")
    return lines


class Repository:
    def __init__(self, path: Path, db: MetadataStore, store: FileStore,
                 classifier: Optional[Classifier], settings: Settings) -> None:
        self.path = Path(path)
        self.db = db
        self.store = store
        self.settings = settings
        self._classifier = classifier

    def _get_classifier(self) -> Classifier:
        # built on first import so list/check/serve never need exiftool
        if self._classifier is None:
            self._classifier = FileClassifier(self.settings.supported_types)
        return self._classifier

    # ---------- open / create ----------

    @classmethod
    def open(cls, path: Path, settings: Optional[Settings] = None,
             classifier: Optional[Classifier] = None) -> "Repository":
        """
        Open the repository at `path`, creating it if it has no vorg.db yet.
        An existing repository must have store/ and thumbnail/ directories
        and a db that passes schema validation.
        """
        path = Path(path)
        settings = settings or Settings()
        store_path = path / STORE_DIR
        thumb_path = path / THUMBNAIL_DIR

        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError.from_os_error(e, path) from e

        if (path / DB_NAME).is_file():
            if not store_path.is_dir():
                raise StoreFolderError(store_path)
            if not thumb_path.is_dir():
                raise ThumbnailFolderError(thumb_path)
        else:
            try:
                store_path.mkdir(parents=True, exist_ok=True)
                thumb_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageIOError.from_os_error(e) from e

        db = SqliteMetadataStore.open_or_create(path / DB_NAME)
        return cls(
            path,
            db=db,
            store=DirectoryFileStore(store_path, settings.chunk_size),
            classifier=classifier,
            settings=settings,
        )

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---------- import ----------

    def import_path(self, path: Path) -> ImportStats:
        """
        Import a file, or every file below a directory.

        A single file propagates every failure. A directory import only
        propagates IO failures; other failures (unsupported, duplicate,
        classification) are logged and skipped. Only regular files are
        imported; symlinks are neither followed nor imported.
        """
        path = Path(path)
        if not path.exists():
            raise MissingFileError(path)
        classifier = self._get_classifier()

        import_id = str(uuid.uuid4())
        ctx = import_logger(import_id, str(path))
        stats = ImportStats(source=str(path), import_id=import_id)

        if path.is_dir():
            ctx.info("Started import: %s (%s)", import_id, path)
            self._import_dir(path, stats, ctx, classifier)
        else:
            if path.is_symlink() or not path.is_file():
                raise UnsupportedTypeError(path, "inode/special")
            stats.scanned += 1
            h = self._import_file(path, classifier)
            stats.imported += 1
            ctx.debug("IMPORTED %s", path, extra={"file_token": h[:8]})

        ctx.info("Import summary: %s", stats.summary())
        return stats

    def _import_dir(self, root: Path, stats: ImportStats, ctx, classifier: Classifier) -> None:
        # explicit stack: depth of the tree does not grow the call stack
        stack: List[Path] = [root]
        heartbeat = self.settings.heartbeat
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = [
                        (Path(e.path), e.is_dir(follow_symlinks=False), e.is_file(follow_symlinks=False))
                        for e in it
                    ]
            except OSError as e:
                raise StorageIOError.from_os_error(e, current) from e

            for p, is_dir, is_file in entries:
                if is_dir:
                    stack.append(p)
                    continue
                if not is_file:
                    stats.skipped += 1
                    ctx.info("Skipping %s: not a regular file", p)
                    continue

                stats.scanned += 1
                if heartbeat > 0 and stats.scanned % heartbeat == 0:
                    ctx.info("… scanned=%d imported=%d duplicates=%d unsupported=%d",
                             stats.scanned, stats.imported, stats.duplicates, stats.unsupported)
                try:
                    h = self._import_file(p, classifier)
                except VorgError as e:
                    if e.kind is ErrorKind.IO:
                        raise
                    if e.kind is ErrorKind.DUPLICATE:
                        stats.duplicates += 1
                    elif e.kind is ErrorKind.UNSUPPORTED:
                        stats.unsupported += 1
                    else:
                        stats.failed += 1
                    ctx.warning("Error encountered: %s Ignoring.", e)
                    continue
                stats.imported += 1
                ctx.debug("IMPORTED %s", p, extra={"file_token": h[:8]})

    def _import_file(self, file: Path, classifier: Classifier) -> str:
        """classify -> hash -> db transaction -> move into store. Returns the hash."""
        mime_type = classifier.classify(file)
        default_ext = resolve_type(file, mime_type, self.settings.supported_types)

        try:
            h = sha224_file(file, self.settings.chunk_size)
        except OSError as e:
            raise StorageIOError.from_os_error(e, file) from e

        # full source path is the placeholder title until the item is curated
        title = lossy_str(file)
        ext = lossy_str(Path(file.suffix))[1:] or default_ext

        # db first: a crash after this leaves a row without a file, which
        # check_data_integrity reports; never a file without a row
        self.db.import_item(title, h, ext)
        self.store.place(file, h, ext)
        return h

    # ---------- queries ----------

    def list_items(self) -> List[Item]:
        return self.db.list_items()

    def list_collections(self) -> List[Collection]:
        return self.db.list_collections()

    # ---------- integrity ----------

    def check_data_integrity(self) -> str:
        """
        Compare the db's items with the store's files. Returns one line per
        problem, or "" when the two agree. Slow on large repositories: every
        stored file is re-hashed.
        """
        db_entries: List[Tuple[str, str]] = [(i.hash, i.ext) for i in self.db.list_items()]
        store_entries, wrong_hash = self.store.walk()
        store_entries = sorted(store_entries)

        lines = reconcile(db_entries, store_entries)
        lines += [f"hash: Expected {m.claimed}, but real hash is {m.actual}" for m in wrong_hash]
        return "".join(f"{line}\n" for line in lines)

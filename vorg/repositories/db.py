# vorg/repositories/db.py
# Relational index of collections, items and tags (vorg.db).

from __future__ import annotations
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Protocol

from vorg.core.errors import DatabaseError, DuplicateItemError, StorageIOError
from vorg.core.logs import LOGGER
from vorg.repositories.schema import INCOMPLETE_TAG, create_schema, validate_schema


def store_path_for(hash_hex: str, ext: str) -> str:
    """Path of an item relative to the store root: '<hash[:2]>/<hash[2:]>.<ext>'."""
    name = hash_hex[2:] + (f".{ext}" if ext else "")
    return f"{hash_hex[:2]}/{name}"


@dataclass
class Item:
    hash: str
    title: str
    ext: str
    collection_id: int
    tags: List[str] = field(default_factory=list)

    @property
    def store_path(self) -> str:
        return store_path_for(self.hash, self.ext)


@dataclass
class StoredFile:
    hash: str
    ext: str

    @property
    def store_path(self) -> str:
        return store_path_for(self.hash, self.ext)


@dataclass
class Collection:
    collection_id: int
    title: str
    tags: List[str] = field(default_factory=list)
    items: List[StoredFile] = field(default_factory=list)


class MetadataStore(Protocol):
    def import_item(self, title: str, hash_hex: str, ext: str) -> int: ...
    def list_items(self) -> List[Item]: ...
    def list_collections(self) -> List[Collection]: ...
    def close(self) -> None: ...


class SqliteMetadataStore:
    """
    Owns one sqlite connection to vorg.db. Every mutation runs in a single
    explicit transaction; sqlite failures surface as DatabaseError.
    """

    def __init__(self, conn: sqlite3.Connection, path: Path) -> None:
        self._conn = conn
        self.path = path

    @classmethod
    def open_or_create(cls, db_path: Path) -> "SqliteMetadataStore":
        """
        Open and validate vorg.db at `db_path`, or create it with the fixed
        schema if nothing exists there yet.
        """
        db_path = Path(db_path)
        exists = db_path.exists()
        if not exists:
            try:
                db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageIOError.from_os_error(e, db_path.parent) from e

        conn = None
        try:
            conn = cls._connect(db_path)
            if exists:
                validate_schema(conn)
            else:
                LOGGER.info("Initializing database at %s", db_path)
                create_schema(conn)
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise DatabaseError(str(e)) from e
        except DatabaseError:
            conn.close()
            raise
        return cls(conn, db_path)

    @classmethod
    def open_read_only(cls, db_path: Path) -> "SqliteMetadataStore":
        """Open and validate an existing vorg.db without write access. Never creates one."""
        db_path = Path(db_path)
        if not db_path.is_file():
            raise DatabaseError(f"Database file not found at {db_path}.")
        conn = None
        try:
            conn = cls._connect(db_path, read_only=True)
            validate_schema(conn)
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise DatabaseError(str(e)) from e
        except DatabaseError:
            conn.close()
            raise
        return cls(conn, db_path)

    @staticmethod
    def _connect(db_path: Path, read_only: bool = False) -> sqlite3.Connection:
        # autocommit mode; transactions are opened explicitly in _transaction()
        if read_only:
            uri = db_path.resolve().as_uri() + "?mode=ro"
            conn = sqlite3.connect(uri, uri=True, isolation_level=None)
        else:
            conn = sqlite3.connect(str(db_path), isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._conn
        conn.execute("BEGIN")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def close(self) -> None:
        self._conn.close()

    # ---------- mutations ----------

    @staticmethod
    def _tag_collection(conn: sqlite3.Connection, collection_id: int, tag: str) -> None:
        conn.execute("INSERT OR IGNORE INTO tags(name) VALUES (?)", (tag,))
        conn.execute(
            """
            INSERT INTO collection_tag(collection_id, tag_id)
            SELECT ?, tag_id FROM tags WHERE name=?
            """,
            (collection_id, tag),
        )

    def import_item(self, title: str, hash_hex: str, ext: str) -> int:
        """
        Create a collection holding one item and tag it `meta:Incomplete`.
        Returns the new collection id. A hash that is already stored rolls the
        whole transaction back and raises DuplicateItemError.
        """
        try:
            with self._transaction() as conn:
                cur = conn.execute("INSERT INTO collections(title) VALUES (?)", (title,))
                collection_id = cur.lastrowid
                try:
                    conn.execute(
                        "INSERT INTO items(collection_id, hash, ext) VALUES (?, ?, ?)",
                        (collection_id, hash_hex, ext),
                    )
                except sqlite3.IntegrityError as e:
                    raise DuplicateItemError(hash_hex) from e
                self._tag_collection(conn, collection_id, INCOMPLETE_TAG)
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e
        return collection_id

    # ---------- reads ----------

    def _tags_of(self, collection_id: int) -> List[str]:
        rows = self._conn.execute(
            """
            SELECT t.name FROM tags t
            JOIN collection_tag ct ON ct.tag_id = t.tag_id
            WHERE ct.collection_id = ?
            """,
            (collection_id,),
        ).fetchall()
        return [r["name"] for r in rows]

    def list_items(self) -> List[Item]:
        """Every item with its collection title and tags, ascending by hash."""
        try:
            rows = self._conn.execute(
                """
                SELECT i.hash, c.title, i.ext, c.collection_id
                FROM collections c
                JOIN items i ON c.collection_id = i.collection_id
                ORDER BY i.hash
                """
            ).fetchall()
            items = [
                Item(hash=r["hash"], title=r["title"], ext=r["ext"], collection_id=r["collection_id"])
                for r in rows
            ]
            for item in items:
                item.tags = self._tags_of(item.collection_id)
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e
        return items

    def list_collections(self) -> List[Collection]:
        try:
            rows = self._conn.execute(
                "SELECT collection_id, title FROM collections ORDER BY collection_id"
            ).fetchall()
            out: List[Collection] = []
            for r in rows:
                cid = r["collection_id"]
                files = self._conn.execute(
                    "SELECT hash, ext FROM items WHERE collection_id=? ORDER BY item_id", (cid,)
                ).fetchall()
                out.append(Collection(
                    collection_id=cid,
                    title=r["title"],
                    tags=self._tags_of(cid),
                    items=[StoredFile(hash=f["hash"], ext=f["ext"]) for f in files],
                ))
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e
        return out

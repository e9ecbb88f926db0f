# vorg/repositories/schema.py
# The vorg.db schema and the validator that gates opening an existing db.
#
# The on-disk layout must stay compatible with existing repositories, so the
# column types below (including VARCHAR(64) for a 56-char SHA-224) are fixed.

from __future__ import annotations
import sqlite3
from typing import Dict, List, Sequence, Tuple

from vorg.core.errors import DatabaseError
from vorg.utils.compare import Divergence, compare_sorted

INCOMPLETE_TAG = "meta:Incomplete"

SCHEMA_SQL = """
CREATE TABLE tags (
    tag_id INTEGER PRIMARY KEY NOT NULL,
    name TEXT NOT NULL
);
CREATE TABLE collections (
    collection_id INTEGER PRIMARY KEY NOT NULL,
    title TEXT NOT NULL
);
CREATE TABLE items (
    item_id INTEGER PRIMARY KEY NOT NULL,
    collection_id INTEGER NOT NULL,
    ext TEXT NOT NULL,
    hash VARCHAR(64) NOT NULL,
    FOREIGN KEY (collection_id) REFERENCES collections(collection_id)
);
CREATE TABLE collection_tag (
    collection_id INTEGER NOT NULL,
    tag_id INTEGER NOT NULL,
    PRIMARY KEY (collection_id, tag_id),
    FOREIGN KEY (collection_id) REFERENCES collections(collection_id),
    FOREIGN KEY (tag_id) REFERENCES tags(tag_id)
);
CREATE VIRTUAL TABLE title_fts USING fts5(
    title,
    content='collections',
    content_rowid='collection_id'
);
CREATE TRIGGER title_insert AFTER INSERT ON collections BEGIN
    INSERT INTO title_fts(rowid, title) VALUES (new.collection_id, new.title);
END;
CREATE TRIGGER title_delete AFTER DELETE ON collections BEGIN
    INSERT INTO title_fts(title_fts, rowid, title)
        VALUES('delete', old.collection_id, old.title);
END;
CREATE TRIGGER title_update AFTER UPDATE ON collections BEGIN
    INSERT INTO title_fts(title_fts, rowid, title)
        VALUES('delete', old.collection_id, old.title);
    INSERT INTO title_fts(rowid, title) VALUES (new.collection_id, new.title);
END;
CREATE UNIQUE INDEX hash_index ON items (hash);
CREATE UNIQUE INDEX tag_index ON tags (name);
"""

# Data tables: columns sorted by name -> declared type.
EXPECTED_COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    "collection_tag": [("collection_id", "INTEGER"), ("tag_id", "INTEGER")],
    "collections":    [("collection_id", "INTEGER"), ("title", "TEXT")],
    "items":          [("collection_id", "INTEGER"), ("ext", "TEXT"),
                       ("hash", "VARCHAR(64)"), ("item_id", "INTEGER")],
    "tags":           [("name", "TEXT"), ("tag_id", "INTEGER")],
}

# FTS5 virtual table plus its shadow tables; presence-checked by name only.
FTS_TABLES = [
    "title_fts",
    "title_fts_config",
    "title_fts_data",
    "title_fts_docsize",
    "title_fts_idx",
]

EXPECTED_TABLES = sorted(list(EXPECTED_COLUMNS) + FTS_TABLES)
EXPECTED_INDICES = ["hash_index", "tag_index"]
EXPECTED_TRIGGERS = ["title_delete", "title_insert", "title_update"]


def create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)


def _names(conn: sqlite3.Connection, sql: str) -> List[str]:
    return [r[0] for r in conn.execute(sql).fetchall()]


def _check_names(actual: Sequence[str], expected: Sequence[str], what: str) -> None:
    res = compare_sorted(actual, expected)
    if res is None:
        return
    if res.divergence is Divergence.MISSING:
        raise DatabaseError(f'{what} "{res.item}" is missing from the database.')
    raise DatabaseError(f'Unexpected {what.lower()} "{res.item}" exists in the database.')


def _check_columns(conn: sqlite3.Connection, table: str) -> None:
    columns = [
        (r[0], r[1])
        for r in conn.execute(
            "SELECT name, type FROM pragma_table_info(?) ORDER BY name", (table,)
        ).fetchall()
    ]
    res = compare_sorted(
        columns,
        EXPECTED_COLUMNS[table],
        key=lambda c: c[0],
        equal=lambda a, e: a[1] == e[1],
    )
    if res is None:
        return
    name, col_type = res.item
    if res.divergence is Divergence.MISSING:
        raise DatabaseError(f'Column "{name}" is missing from table "{table}".')
    if res.divergence is Divergence.UNEXPECTED:
        raise DatabaseError(f'Unexpected column "{name}" in table "{table}".')
    raise DatabaseError(f'Column "{name}" in table "{table}" should have type "{col_type}".')


def validate_schema(conn: sqlite3.Connection) -> None:
    """
    Compare tables, data-table columns, indices and triggers against the
    expected schema. Raises DatabaseError naming the first divergence.
    """
    tables = _names(conn, "SELECT tbl_name FROM sqlite_master WHERE type='table' ORDER BY tbl_name")
    _check_names(tables, EXPECTED_TABLES, "Table")

    for table in sorted(EXPECTED_COLUMNS):
        _check_columns(conn, table)

    # sql IS NULL => automatic indices (e.g. for the composite primary key)
    indices = _names(conn, "SELECT name FROM sqlite_master WHERE type='index' AND sql IS NOT NULL ORDER BY name")
    _check_names(indices, EXPECTED_INDICES, "Index")

    triggers = _names(conn, "SELECT name FROM sqlite_master WHERE type='trigger' ORDER BY name")
    _check_names(triggers, EXPECTED_TRIGGERS, "Trigger")

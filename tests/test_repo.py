import os
import sys

import pytest

from conftest import sha224
from vorg.core.config import Settings
from vorg.core.errors import (
    ClassifyError, DuplicateItemError, ErrorKind, MissingFileError, MissingToolError,
    StorageIOError, StoreFolderError, ThumbnailFolderError, UnsupportedTypeError,
)
from vorg.services import classify
from vorg.services.repo import Repository


# ---------- open / create ----------

def test_open_creates_layout(tmp_path, classifier):
    root = tmp_path / "repo"
    with Repository.open(root, classifier=classifier):
        pass
    assert (root / "vorg.db").is_file()
    assert (root / "store").is_dir()
    assert (root / "thumbnail").is_dir()

    # and reopens
    with Repository.open(root, classifier=classifier):
        pass


@pytest.mark.parametrize("folder, error", [
    ("store", StoreFolderError),
    ("thumbnail", ThumbnailFolderError),
])
def test_open_rejects_missing_folders(tmp_path, classifier, folder, error):
    root = tmp_path / "repo"
    Repository.open(root, classifier=classifier).close()
    (root / folder).rmdir()
    (root / folder).write_text("not a folder")

    with pytest.raises(error):
        Repository.open(root, classifier=classifier)


def test_open_on_a_file_is_io_error(tmp_path, classifier):
    root = tmp_path / "repo"
    root.write_text("file")
    with pytest.raises(StorageIOError):
        Repository.open(root, classifier=classifier)


# ---------- single file import ----------

def test_import_file_places_and_indexes(repo, make_file):
    data = b"video:black"
    src = make_file("black.mp4", data)
    h = sha224(data)

    stats = repo.import_path(src)

    assert (stats.scanned, stats.imported) == (1, 1)
    stored = repo.path / "store" / h[:2] / f"{h[2:]}.mp4"
    assert stored.read_bytes() == data
    assert not src.exists()

    items = repo.list_items()
    assert len(items) == 1
    assert items[0].hash == h
    assert items[0].title == str(src)
    assert items[0].tags == ["meta:Incomplete"]


def test_import_same_bytes_twice_is_duplicate(repo, make_file):
    data = b"video:same"
    repo.import_path(make_file("first.mp4", data))
    second = make_file("second.mp4", data)

    with pytest.raises(DuplicateItemError) as exc:
        repo.import_path(second)
    assert exc.value.kind is ErrorKind.DUPLICATE

    assert len(repo.list_items()) == 1
    assert second.exists()


def test_import_missing_path(repo, tmp_path):
    with pytest.raises(MissingFileError) as exc:
        repo.import_path(tmp_path / "no.mp4")
    assert exc.value.kind is ErrorKind.FILE_NOT_FOUND


def test_import_unsupported_file_is_untouched(repo, make_file):
    src = make_file("notes.txt", b"plain text")
    with pytest.raises(UnsupportedTypeError) as exc:
        repo.import_path(src)
    assert exc.value.mime_type == "text/plain"
    assert src.exists()
    assert repo.list_items() == []


def test_extension_falls_back_to_canonical(repo, make_file):
    data = b"video:no extension"
    repo.import_path(make_file("clip", data))
    h = sha224(data)
    assert repo.list_items()[0].ext == "mp4"
    assert (repo.path / "store" / h[:2] / f"{h[2:]}.mp4").is_file()


def test_extension_from_filename_wins(repo, make_file):
    repo.import_path(make_file("clip.MOV", b"video:upper"))
    assert repo.list_items()[0].ext == "MOV"


# ---------- ordering against fakes ----------

def test_db_is_written_before_the_store(fake_repo, make_file):
    data = b"video:ordered"
    fake_repo.import_path(make_file("a.mp4", data))
    h = sha224(data)[:8]
    assert fake_repo.db.calls == [f"db:{h}", f"store:{h}"]


def test_duplicate_never_reaches_the_store(fake_repo, make_file):
    data = b"video:dupe"
    fake_repo.import_path(make_file("a.mp4", data))
    with pytest.raises(DuplicateItemError):
        fake_repo.import_path(make_file("b.mp4", data))
    assert len(fake_repo.store.placed) == 1


def test_failed_placement_leaves_row_for_integrity_check(fake_repo, make_file):
    fake_repo.store.fail_with = StorageIOError("No space left on device")
    data = b"video:disk full"
    with pytest.raises(StorageIOError):
        fake_repo.import_path(make_file("a.mp4", data))
    assert sha224(data) in fake_repo.db.rows

    report = fake_repo.check_data_integrity()
    assert report == f"store: file not found in store: {sha224(data)}\n"


# ---------- directory import ----------

def test_directory_import_is_best_effort(repo, make_file):
    make_file("a.mp4", b"video:1")
    make_file("sub/b.mp4", b"video:2")
    make_file("sub/deeper/c", b"video:3")
    notes = make_file("sub/notes.txt", b"just text")

    stats = repo.import_path(notes.parent.parent)

    assert (stats.scanned, stats.imported, stats.unsupported) == (4, 3, 1)
    assert len(repo.list_items()) == 3
    assert notes.read_bytes() == b"just text"


def test_directory_import_skips_duplicates_and_classify_failures(repo, make_file):
    make_file("a.mp4", b"video:same")
    make_file("b.mp4", b"video:same")
    broken = make_file("c.mp4", b"broken:header")

    stats = repo.import_path(broken.parent)

    assert (stats.imported, stats.duplicates, stats.failed) == (1, 1, 1)
    assert len(repo.list_items()) == 1
    assert broken.exists()


def test_directory_import_stops_on_io_error(fake_repo, make_file):
    make_file("a.mp4", b"video:1")
    src = make_file("b.mp4", b"video:2")
    fake_repo.store.fail_with = StorageIOError("Read-only file system")

    with pytest.raises(StorageIOError):
        fake_repo.import_path(src.parent)
    # aborted on the first file
    assert [c.split(":")[0] for c in fake_repo.store.calls] == ["db", "store"]


def test_single_file_classify_error_propagates(repo, make_file):
    with pytest.raises(ClassifyError):
        repo.import_path(make_file("x.mp4", b"broken:"))


def test_heartbeat_logs_progress(tmp_path, classifier, make_file, caplog):
    settings = Settings({"import": {"heartbeat": 2}})
    for n in range(4):
        make_file(f"f{n}.mp4", f"video:{n}".encode())
    with Repository.open(tmp_path / "repo", settings=settings, classifier=classifier) as r:
        with caplog.at_level("INFO", logger="vorg"):
            r.import_path(tmp_path / "incoming")
    assert sum("scanned=" in m and "…" in m for m in caplog.messages) == 2


# ---------- integrity ----------

def _import_two(repo, make_file):
    a, b = b"video:a", b"video:b"
    repo.import_path(make_file("a.mp4", a))
    repo.import_path(make_file("b.mp4", b))
    return sha224(a), sha224(b)


def test_clean_repo_has_empty_report(repo, make_file):
    _import_two(repo, make_file)
    assert repo.check_data_integrity() == ""


def test_deleted_store_file_is_reported(repo, make_file):
    ha, _ = _import_two(repo, make_file)
    (repo.path / "store" / ha[:2] / f"{ha[2:]}.mp4").unlink()

    assert repo.check_data_integrity() == f"store: file not found in store: {ha}\n"


def test_redundant_store_file_is_reported(repo, make_file):
    _import_two(repo, make_file)
    stray = b"video:stray"
    hs = sha224(stray)
    p = repo.path / "store" / hs[:2] / f"{hs[2:]}.mp4"
    p.parent.mkdir(exist_ok=True)
    p.write_bytes(stray)

    assert repo.check_data_integrity() == f"store: redundant file in store: {hs}\n"


def test_extension_drift_is_reported(repo, make_file):
    ha, _ = _import_two(repo, make_file)
    stored = repo.path / "store" / ha[:2] / f"{ha[2:]}.mp4"
    stored.rename(stored.with_suffix(".mkv"))

    assert repo.check_data_integrity() == "ext: different extensions: mp4 in db but mkv in store\n"


def test_corrupted_store_file_is_reported(repo, make_file):
    ha, _ = _import_two(repo, make_file)
    stored = repo.path / "store" / ha[:2] / f"{ha[2:]}.mp4"
    stored.write_bytes(b"bit rot")

    assert repo.check_data_integrity() == f"hash: Expected {ha}, but real hash is {sha224(b'bit rot')}\n"


# ---------- odd directory entries ----------

posix_only = pytest.mark.skipif(sys.platform in ("win32", "darwin"),
                                reason="needs a filesystem that accepts arbitrary name bytes")


@posix_only
def test_names_that_are_not_utf8_are_imported_lossily(repo, make_file, tmp_path):
    make_file("ok.mp4", b"video:ok")
    sub = os.fsencode(tmp_path / "incoming" / "sub")
    os.mkdir(sub)
    bad = os.path.join(sub, b"bad\xff.mp4")
    odd_ext = os.path.join(sub, b"clip.m\xffv")
    for name, data in ((bad, b"video:bad name"), (odd_ext, b"video:odd ext")):
        with open(name, "wb") as f:
            f.write(data)

    stats = repo.import_path(tmp_path / "incoming")

    assert (stats.imported, stats.failed) == (3, 0)
    items = {i.hash: i for i in repo.list_items()}
    assert items[sha224(b"video:bad name")].title.endswith("sub/bad\ufffd.mp4")
    assert items[sha224(b"video:odd ext")].ext == "m\ufffdv"
    assert not os.path.exists(bad)
    assert repo.check_data_integrity() == ""


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="no named pipes")
def test_fifo_is_skipped_not_read(repo, make_file, tmp_path):
    make_file("ok.mp4", b"video:ok")
    pipe = tmp_path / "incoming" / "pipe"
    os.mkfifo(pipe)

    stats = repo.import_path(tmp_path / "incoming")
    assert (stats.imported, stats.skipped) == (1, 1)
    assert pipe.exists()

    with pytest.raises(UnsupportedTypeError):
        repo.import_path(pipe)


@pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges")
def test_symlinks_are_not_followed(repo, make_file, tmp_path):
    make_file("a/ok.mp4", b"video:ok")
    outside = tmp_path / "elsewhere.mp4"
    outside.write_bytes(b"video:elsewhere")
    incoming = tmp_path / "incoming"
    os.symlink(incoming, incoming / "a" / "loop", target_is_directory=True)
    os.symlink(outside, incoming / "link.mp4")

    stats = repo.import_path(incoming)

    assert (stats.imported, stats.skipped) == (1, 2)
    assert outside.read_bytes() == b"video:elsewhere"
    assert [i.hash for i in repo.list_items()] == [sha224(b"video:ok")]


# ---------- classifier availability ----------

MP4_HEADER = b"\x00\x00\x00\x18ftypisom\x00\x00\x02\x00isomiso2" + b"\x00" * 32


def test_video_without_exiftool_is_an_error_not_unsupported(tmp_path, make_file, monkeypatch):
    monkeypatch.setattr(classify, "_has_exiftool", lambda: False)
    clip = make_file("clip.mp4", MP4_HEADER)

    with Repository.open(tmp_path / "repo", settings=Settings()) as r:
        with pytest.raises(MissingToolError):
            r.import_path(clip)
        with pytest.raises(MissingToolError):
            r.import_path(clip.parent)
        assert r.list_items() == []
        # read-only operations do not need a classifier
        assert r.check_data_integrity() == ""
    assert clip.exists()

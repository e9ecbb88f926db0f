import hashlib
import logging
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from vorg.core.config import Settings
from vorg.core.errors import ClassifyError, DuplicateItemError
from vorg.repositories.db import Collection, Item, StoredFile
from vorg.services.repo import Repository


def sha224(data: bytes) -> str:
    return hashlib.sha224(data).hexdigest()


class FakeClassifier:
    """Types files by a content prefix instead of sniffing real formats."""
    PREFIXES = {
        b"video:": "video/mp4",
        b"image:": "image/png",
    }

    def classify(self, path: Path) -> str:
        data = Path(path).read_bytes()
        if data.startswith(b"broken:"):
            raise ClassifyError(path, "cannot read magic")
        for prefix, mime in self.PREFIXES.items():
            if data.startswith(prefix):
                return mime
        return "text/plain"


class FakeMetadataStore:
    def __init__(self, calls: List[str]) -> None:
        self.calls = calls
        self.rows: Dict[str, Tuple[int, str, str]] = {}

    def import_item(self, title: str, hash_hex: str, ext: str) -> int:
        self.calls.append(f"db:{hash_hex[:8]}")
        if hash_hex in self.rows:
            raise DuplicateItemError(hash_hex)
        cid = len(self.rows) + 1
        self.rows[hash_hex] = (cid, title, ext)
        return cid

    def list_items(self) -> List[Item]:
        return [
            Item(hash=h, title=t, ext=e, collection_id=cid, tags=["meta:Incomplete"])
            for h, (cid, t, e) in sorted(self.rows.items())
        ]

    def list_collections(self) -> List[Collection]:
        return [
            Collection(collection_id=cid, title=t, tags=["meta:Incomplete"], items=[StoredFile(h, e)])
            for h, (cid, t, e) in self.rows.items()
        ]

    def close(self) -> None:
        pass


class FakeFileStore:
    def __init__(self, calls: List[str]) -> None:
        self.calls = calls
        self.placed: Dict[str, Path] = {}
        self.walk_result: Tuple[list, list] = ([], [])
        self.fail_with = None

    def path_for(self, hash_hex: str, ext: str) -> Path:
        return Path("/store") / hash_hex[:2] / f"{hash_hex[2:]}.{ext}"

    def place(self, source: Path, hash_hex: str, ext: str) -> Path:
        self.calls.append(f"store:{hash_hex[:8]}")
        if self.fail_with is not None:
            raise self.fail_with
        self.placed[hash_hex] = Path(source)
        return self.path_for(hash_hex, ext)

    def walk(self):
        return self.walk_result


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def repo(tmp_path, classifier):
    r = Repository.open(tmp_path / "repo", settings=Settings(), classifier=classifier)
    yield r
    r.close()


@pytest.fixture
def fake_repo(tmp_path, classifier):
    calls: List[str] = []
    return Repository(
        tmp_path / "repo",
        db=FakeMetadataStore(calls),
        store=FakeFileStore(calls),
        classifier=classifier,
        settings=Settings(),
    )


@pytest.fixture
def make_file(tmp_path):
    def _make(rel: str, data: bytes) -> Path:
        p = tmp_path / "incoming" / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
        return p
    return _make



@pytest.fixture(autouse=True)
def _reset_vorg_logger():
    # setup_logging() detaches the logger from root; undo it so caplog sees records
    yield
    from vorg.core.logs import LOGGER
    for h in list(LOGGER.handlers):
        LOGGER.removeHandler(h)
        h.close()
    LOGGER.propagate = True
    LOGGER.setLevel(logging.NOTSET)

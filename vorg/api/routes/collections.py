# vorg/api/routes/collections.py
# Read-only views over one repository:
# - GET /api/collections
# - GET /store/{path}
from pathlib import Path
from typing import Optional
import urllib.parse

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse

from vorg.repositories.db import Collection, SqliteMetadataStore
from vorg.schemas.collection import CollectionList, CollectionOut, StoredItem
from vorg.services.repo import DB_NAME, STORE_DIR

api_router = APIRouter(tags=["collections"])   # mounted under /api in main
public_router = APIRouter()                    # mounted without prefix in main


def repo_path(request: Request) -> Path:
    return request.app.state.repo_path


def stored_file(root: Path, store_path: str) -> Optional[Path]:
    """
    Absolute path of `store_path` inside <root>/store, or None when it
    resolves outside the store (`..`, absolute paths, symlinks out).
    """
    store_root = (root / STORE_DIR).resolve()
    target = (store_root / store_path).resolve()
    if store_root not in target.parents:
        return None
    return target


def media_url(request: Request, store_path: str) -> str:
    base = str(request.base_url).rstrip("/")
    return f"{base}/store/{urllib.parse.quote(store_path)}"


def _collection_out(request: Request, c: Collection) -> CollectionOut:
    return CollectionOut(
        collection_id=c.collection_id,
        title=c.title,
        tags=sorted(c.tags),
        items=[
            StoredItem(
                hash=f.hash,
                ext=f.ext,
                store_path=f.store_path,
                media_url=media_url(request, f.store_path),
            )
            for f in c.items
        ],
    )


@api_router.get("/collections", response_model=CollectionList)
def list_collections(request: Request, root: Path = Depends(repo_path)):
    # opened per request so the connection stays on this worker thread
    db = SqliteMetadataStore.open_read_only(root / DB_NAME)
    try:
        collections = db.list_collections()
    finally:
        db.close()
    return CollectionList(collections=[_collection_out(request, c) for c in collections])


@public_router.get("/store/{path:path}")
def get_stored_file(path: str, root: Path = Depends(repo_path)):
    abs_path = stored_file(root, path)
    if abs_path is None:
        raise HTTPException(403, "forbidden path")
    if not abs_path.is_file():
        raise HTTPException(404, "file not found")
    return FileResponse(abs_path)

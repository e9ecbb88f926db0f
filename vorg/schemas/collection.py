# vorg/schemas/collection.py
from pydantic import BaseModel
from typing import List


class StoredItem(BaseModel):
    hash: str
    ext: str
    store_path: str
    media_url: str


class CollectionOut(BaseModel):
    collection_id: int
    title: str
    tags: List[str]
    items: List[StoredItem]


class CollectionList(BaseModel):
    collections: List[CollectionOut]

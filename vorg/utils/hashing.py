# vorg/utils/hashing.py
from pathlib import Path
import hashlib

DEFAULT_CHUNK = 1024 * 1024


def sha224_file(p: Path, bufsize: int = DEFAULT_CHUNK) -> str:
    """Hex SHA-224 of the file's bytes (56 chars). The store is keyed by this."""
    h = hashlib.sha224()
    with Path(p).open("rb", buffering=0) as f:
        while True:
            chunk = f.read(bufsize)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()

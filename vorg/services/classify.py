# vorg/services/classify.py
# Content sniffing: file -> MIME type, then MIME type -> canonical extension.
# exiftool is used when it is on PATH. Without it Pillow can only identify
# images, so a table listing any other type refuses to fall back.

from __future__ import annotations
from pathlib import Path
from typing import Mapping, Optional, Protocol
import json, subprocess, shutil

from PIL import Image, UnidentifiedImageError

from vorg.core.errors import ClassifyError, MissingToolError, UnsupportedTypeError

UNKNOWN_MIME = "application/octet-stream"


class Classifier(Protocol):
    def classify(self, path: Path) -> str: ...


def _has_exiftool() -> bool:
    return shutil.which("exiftool") is not None


def _via_exiftool(p: Path) -> str:
    """MIME type as reported by `exiftool -MIMEType`."""
    cmd = ["exiftool", "-j", "-MIMEType", "-api", "largefilesupport=1", str(p)]
    proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if proc.returncode != 0:
        raise ClassifyError(p, proc.stderr.strip() or f"exiftool rc={proc.returncode}")
    try:
        data = json.loads(proc.stdout) or [{}]
    except json.JSONDecodeError as e:
        raise ClassifyError(p, f"unreadable exiftool output: {e}") from e
    return str(data[0].get("MIMEType") or UNKNOWN_MIME).lower()


def _via_pillow(p: Path) -> str:
    """Image-only fallback; anything Pillow cannot identify is octet-stream."""
    try:
        with Image.open(p) as im:
            return Image.MIME.get(im.format or "", UNKNOWN_MIME)
    except UnidentifiedImageError:
        return UNKNOWN_MIME
    except OSError as e:
        raise ClassifyError(p, str(e)) from e


class FileClassifier:
    def __init__(self, supported: Mapping[str, str], use_exiftool: Optional[bool] = None) -> None:
        self.use_exiftool = _has_exiftool() if use_exiftool is None else use_exiftool
        if not self.use_exiftool:
            not_images = sorted(m for m in supported if not m.startswith("image/"))
            if not_images:
                raise MissingToolError("exiftool", not_images)

    def classify(self, path: Path) -> str:
        path = Path(path)
        if self.use_exiftool:
            return _via_exiftool(path)
        return _via_pillow(path)


def resolve_type(path: Path, mime_type: str, supported: Mapping[str, str]) -> str:
    """Canonical extension for `mime_type`, or UnsupportedTypeError."""
    ext = supported.get((mime_type or "").lower())
    if ext is None:
        raise UnsupportedTypeError(path, mime_type)
    return ext

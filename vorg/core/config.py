# vorg/core/config.py
# Loads vorg settings from a TOML file (defaults + overrides).
# - Reads VORG_CONFIG or searches for vorg.toml from the CWD upwards
# - Normalizes the supported MIME table (lowercase keys, bare extensions)
# - Settings are built once and handed to the Repository / CLI / API

from __future__ import annotations
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional
import os
import tomli as tomllib  # py3.11+: tomllib in stdlib; using tomli for compatibility


# -------------------- Defaults (used if TOML omits keys) --------------------
_DEFAULTS = {
    # MIME type -> canonical extension (used when the file has no extension)
    "formats": {
        "video/mp4": "mp4",
        "video/quicktime": "mov",
        "video/webm": "webm",
        "video/x-matroska": "mkv",
        "video/x-msvideo": "avi",
        "image/jpeg": "jpg",
        "image/png": "png",
        "image/gif": "gif",
        "image/webp": "webp",
    },
    "import": {
        "heartbeat": 500,           # progress line every N files (0 = off)
        "chunk_size": 1024 * 1024,  # bytes per read while hashing
    },
    "logging": {
        "logs_dir": "",             # empty => console only
        "json": False,
        "level": "",                # forces console + file level when set
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8080,
    },
}

CONFIG_NAME = "vorg.toml"


# -------------------- Read + merge TOML --------------------

def _find_config_path() -> Optional[Path]:
    """Find vorg.toml without user input.
    Priority:
      1) VORG_CONFIG
      2) ./vorg.toml (CWD)
      3) ascend parents from CWD looking for vorg.toml
      4) vorg.toml next to the package
    """
    cfg_env = os.getenv("VORG_CONFIG")
    if cfg_env:
        p = Path(cfg_env).expanduser()
        if p.exists():
            return p

    cur = Path.cwd()
    while True:
        candidate = cur / CONFIG_NAME
        if candidate.exists():
            return candidate
        if cur.parent == cur:
            break  # reached filesystem root
        cur = cur.parent

    pkg_default = Path(__file__).resolve().parents[1] / CONFIG_NAME
    if pkg_default.exists():
        return pkg_default

    return None


def _load_config_toml(path: Optional[Path]) -> dict:
    """Load TOML from `path` (or the best match) and return {} if not found."""
    path = path or _find_config_path()
    if path and path.exists():
        with path.open("rb") as f:
            return tomllib.load(f)
    return {}


def _norm_ext(ext: str) -> str:
    """'.MP4' / 'mp4' -> 'mp4'."""
    return (ext or "").strip().lstrip(".").lower()


def _norm_formats(formats: dict) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for mime, ext in formats.items():
        mime = (mime or "").strip().lower()
        ext = _norm_ext(str(ext))
        if not mime or not ext:
            continue
        out[mime] = ext
    return out


# -------------------- Settings container --------------------

class Settings:
    """
    Effective settings for one process. `supported_types` is read-only and is
    passed by reference to whatever needs to classify files.
    """
    def __init__(self, cfg: Optional[dict] = None, source: Optional[Path] = None) -> None:
        cfg = cfg or {}
        self.source = source

        # [formats] replaces the default table wholesale when present
        formats = cfg.get("formats")
        table = _norm_formats(formats if formats is not None else _DEFAULTS["formats"])
        self.supported_types: Mapping[str, str] = MappingProxyType(table)

        imp = {**_DEFAULTS["import"], **cfg.get("import", {})}
        self.heartbeat: int = int(imp.get("heartbeat", 500))
        self.chunk_size: int = max(int(imp.get("chunk_size", 1024 * 1024)), 1)

        logc = {**_DEFAULTS["logging"], **cfg.get("logging", {})}
        logs_dir = str(logc.get("logs_dir") or "").strip()
        self.logs_dir: Optional[Path] = Path(logs_dir).expanduser() if logs_dir else None
        self.json_logs: bool = bool(logc.get("json", False))
        level = str(logc.get("level") or "").strip().upper()
        self.log_level: Optional[str] = level or None

        srv = {**_DEFAULTS["server"], **cfg.get("server", {})}
        self.host: str = str(srv.get("host", "127.0.0.1"))
        self.port: int = int(srv.get("port", 8080))

    def __repr__(self) -> str:
        return (
            f"Settings(source={self.source}, supported_types={dict(self.supported_types)}, "
            f"heartbeat={self.heartbeat}, chunk_size={self.chunk_size}, "
            f"logs_dir={self.logs_dir}, json_logs={self.json_logs}, log_level={self.log_level}, "
            f"host={self.host}, port={self.port})"
        )


def load_settings(path: Optional[Path] = None) -> Settings:
    """Read vorg.toml (explicit path, or the lookup order above) into Settings."""
    found = Path(path).expanduser() if path else _find_config_path()
    return Settings(_load_config_toml(found), source=found if found and found.exists() else None)

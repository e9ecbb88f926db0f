import pytest

from vorg.core.config import Settings, load_settings


def test_defaults():
    s = Settings()
    assert s.supported_types["video/mp4"] == "mp4"
    assert s.heartbeat == 500
    assert s.logs_dir is None
    assert (s.host, s.port) == ("127.0.0.1", 8080)


def test_formats_are_normalised_and_replace_defaults():
    s = Settings({"formats": {" Video/MP4 ": ".MP4", "image/png": "", "": "x"}})
    assert dict(s.supported_types) == {"video/mp4": "mp4"}


def test_supported_types_is_read_only():
    s = Settings()
    with pytest.raises(TypeError):
        s.supported_types["text/plain"] = "txt"


def test_partial_sections_keep_defaults():
    s = Settings({"import": {"heartbeat": 0}, "logging": {"level": "debug"}})
    assert s.heartbeat == 0
    assert s.chunk_size == 1024 * 1024
    assert s.log_level == "DEBUG"


def test_load_from_env(tmp_path, monkeypatch):
    cfg = tmp_path / "custom.toml"
    cfg.write_text('[formats]\n"video/webm" = "webm"\n\n[server]\nport = 9000\n')
    monkeypatch.setenv("VORG_CONFIG", str(cfg))

    s = load_settings()
    assert s.source == cfg
    assert dict(s.supported_types) == {"video/webm": "webm"}
    assert s.port == 9000


def test_load_searches_parent_directories(tmp_path, monkeypatch):
    monkeypatch.delenv("VORG_CONFIG", raising=False)
    (tmp_path / "vorg.toml").write_text("[import]\nheartbeat = 7\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert load_settings().heartbeat == 7


def test_explicit_path_wins(tmp_path, monkeypatch):
    monkeypatch.setenv("VORG_CONFIG", str(tmp_path / "ignored.toml"))
    cfg = tmp_path / "explicit.toml"
    cfg.write_text("[logging]\njson = true\n")
    assert load_settings(cfg).json_logs is True

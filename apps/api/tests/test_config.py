"""
Tests for environment-driven settings.
"""

from pathlib import Path

from config import get_settings, load_settings, reset_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("PLATERUNNER_DATA_DIR", "PLATERUNNER_PRESETS_FILE", "PLATERUNNER_MAX_COPIES",
                     "PLATERUNNER_MAX_UPLOAD_MB", "PLATERUNNER_CORS_ORIGINS", "PLATERUNNER_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = load_settings()

        assert settings.data_dir == Path("/data")
        assert settings.presets_path == Path("/data/presets.json")
        assert settings.max_copies == 99
        assert settings.max_upload_bytes == 200 * 1024 * 1024
        assert settings.cors_origins == ["http://localhost:8080", "http://127.0.0.1:8080"]
        assert settings.log_level == "INFO"

    def test_overrides(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("PLATERUNNER_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("PLATERUNNER_MAX_COPIES", "12")
        monkeypatch.setenv("PLATERUNNER_CORS_ORIGINS", "http://a, http://b ,")
        monkeypatch.setenv("PLATERUNNER_LOG_LEVEL", "debug")

        settings = load_settings()

        assert settings.presets_path == tmp_path / "presets.json"
        assert settings.max_copies == 12
        assert settings.cors_origins == ["http://a", "http://b"]
        assert settings.log_level == "DEBUG"

    def test_invalid_numbers_fall_back(self, monkeypatch):
        monkeypatch.setenv("PLATERUNNER_MAX_COPIES", "lots")
        assert load_settings().max_copies == 99

    def test_cached_until_reset(self, monkeypatch, tmp_path: Path):
        reset_settings()
        monkeypatch.setenv("PLATERUNNER_PRESETS_FILE", str(tmp_path / "a.json"))
        first = get_settings()
        monkeypatch.setenv("PLATERUNNER_PRESETS_FILE", str(tmp_path / "b.json"))
        assert get_settings() is first

        reset_settings()
        assert get_settings().presets_path == tmp_path / "b.json"
        reset_settings()

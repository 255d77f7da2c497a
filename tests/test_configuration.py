import pytest
from omegaconf.errors import ConfigKeyError
from pydantic import ValidationError

from zip_watermarker.configuration import load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "WATERMARKER_DEBUG",
        "WATERMARKER_FFMPEG_PATH",
        "WATERMARKER_TEMP_ROOT",
        "WATERMARKER_MAX_UPLOAD_BYTES",
        "WATERMARKER_COMPOSITOR_WORKERS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_packaged_defaults(self):
        settings = load_settings()
        assert settings.port == 8848
        assert settings.debug is False
        assert settings.ffmpeg_path == "/usr/local/bin/ffmpeg"
        assert settings.overlay_margin == 10
        assert settings.media_extensions == [".bmp", ".jpg", ".png", ".mp4"]
        assert settings.output_suffix == ".watermark"
        assert settings.temp_prefix == "watermark_"
        assert settings.temp_root == ""
        assert settings.max_part_size == 1024
        assert settings.compositor_workers == 4


class TestOverrides:
    def test_environment(self, monkeypatch):
        monkeypatch.setenv("WATERMARKER_FFMPEG_PATH", "/usr/bin/ffmpeg")
        monkeypatch.setenv("WATERMARKER_DEBUG", "true")
        monkeypatch.setenv("WATERMARKER_COMPOSITOR_WORKERS", "8")
        settings = load_settings()
        assert settings.ffmpeg_path == "/usr/bin/ffmpeg"
        assert settings.debug is True
        assert settings.compositor_workers == 8

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("WATERMARKER_DEBUG", "true")
        settings = load_settings({"debug": False, "media_extensions": [".png"]})
        assert settings.debug is False
        assert settings.media_extensions == [".png"]

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigKeyError):
            load_settings({"listen_port": 9000})

    def test_extensions_need_leading_dot(self):
        with pytest.raises(ValidationError):
            load_settings({"media_extensions": ["png"]})

    def test_worker_count_must_be_positive(self):
        with pytest.raises(ValidationError):
            load_settings({"compositor_workers": 0})

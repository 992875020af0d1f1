import json

import pytest

from nowsync.lib import config


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Point the loader at a temp file and nothing else."""
    path = tmp_path / "config.json"
    monkeypatch.setattr(config, "_SEARCH_PATHS", [])
    monkeypatch.setenv("NOWSYNC_CONFIG", str(path))

    def write(data):
        path.write_text(json.dumps(data) if isinstance(data, dict) else data)
        return config.reload_config()

    yield write
    monkeypatch.delenv("NOWSYNC_CONFIG")
    config.reload_config()


def test_cfg_reads_sections_and_keys(config_file):
    config_file({"surface": {"port": 9000}, "mpv": {"path": "/usr/bin/mpv"}})
    assert config.cfg("surface", "port") == 9000
    assert config.cfg("surface", "host", default="0.0.0.0") == "0.0.0.0"
    assert config.cfg("mpv") == {"path": "/usr/bin/mpv"}
    assert config.cfg("sync", default={}) == {}


def test_missing_file_means_defaults(config_file, tmp_path):
    assert config.reload_config() == {}
    assert config.cfg("surface", "port", default=8766) == 8766


def test_invalid_json_is_skipped(config_file, caplog):
    assert config_file("{not json") == {}
    assert "Invalid JSON" in caplog.text


def test_unknown_keys_are_warned_about(config_file, caplog):
    config_file({"sync": {"min_interval": 5},
                 "surface": {"commands": ["play", "shuffle"]}})
    assert "unknown sync keys min_interval" in caplog.text
    assert "unknown surface command 'shuffle'" in caplog.text


def test_sync_settings_from_config(config_file):
    config_file({"sync": {"min_interval_ms": 500, "settle_window_ms": "20",
                          "force_on_transition": 0}})
    settings = config.SyncSettings.from_config()
    assert settings.min_interval_ms == 500.0
    assert settings.settle_window_ms == 20.0
    assert settings.force_on_transition is False
    assert settings.skip_seconds == 15.0


def test_sync_settings_fall_back_on_bad_values(config_file, caplog):
    config_file({"sync": {"min_interval_ms": "often", "seek_tolerance": -1}})
    settings = config.SyncSettings.from_config()
    assert settings.min_interval_ms == 1000.0
    assert settings.seek_tolerance == 0.5
    assert "is not a number" in caplog.text
    assert "is negative" in caplog.text

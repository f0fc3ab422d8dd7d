"""Tests for configuration loading and saving."""
import json
import math

import pytest

from rftrack.config import DEFAULT_TRACK_BW, Config
from rftrack.errors import ParseError
from rftrack.orbit import Site


@pytest.fixture(autouse=True)
def no_env_credentials(monkeypatch):
    monkeypatch.delenv("SPACETRACK_USER", raising=False)
    monkeypatch.delenv("SPACETRACK_PASS", raising=False)


class TestConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = Config.load(tmp_path / "none.json")
        assert config.site is None
        assert config.space_track_creds is None
        assert config.signal_sigma == 5.0
        assert config.track_bw == DEFAULT_TRACK_BW

    def test_load(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "site": {"latitude": 52.0, "longitude": 4.4, "altitude": 10.0},
            "space_track": {"user": "me@example.com", "password": "hunter2"},
            "signal_sigma": 3.5,
            "track_bw": 20000,
        }))
        config = Config.load(path)
        assert config.site.latitude == pytest.approx(math.radians(52.0))
        assert config.site.longitude == pytest.approx(math.radians(4.4))
        assert config.site.altitude == pytest.approx(0.01)
        assert config.space_track_creds == ("me@example.com", "hunter2")
        assert config.signal_sigma == 3.5
        assert config.track_bw == 20000.0

    def test_env_overrides_credentials(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SPACETRACK_USER", "env@example.com")
        monkeypatch.setenv("SPACETRACK_PASS", "secret")
        config = Config.load(tmp_path / "none.json")
        assert config.space_track_creds == ("env@example.com", "secret")

    def test_repr_masks_password(self):
        config = Config(space_track_creds=("me@example.com", "hunter2"))
        text = repr(config)
        assert "me@example.com" in text
        assert "hunter2" not in text
        assert "********" in text

    def test_save_round_trip(self, tmp_path):
        original = Config(
            site=Site.from_degrees(-33.9, 18.4, 42.0),
            space_track_creds=("me@example.com", "pw"),
            signal_sigma=7.0,
        )
        path = original.save(tmp_path / "nested" / "config.json")
        loaded = Config.load(path)
        assert loaded.site.latitude == pytest.approx(original.site.latitude)
        assert loaded.site.altitude == pytest.approx(original.site.altitude)
        assert loaded.space_track_creds == original.space_track_creds
        assert loaded.signal_sigma == 7.0

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ParseError, match="Invalid config"):
            Config.load(path)

    @pytest.mark.parametrize("raw", [
        {"site": {"latitude": 52.0}},
        {"signal_sigma": "high"},
        {"space_track": "me"},
        [1, 2, 3],
    ])
    def test_invalid_values(self, tmp_path, raw):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(raw))
        with pytest.raises(ParseError):
            Config.load(path)

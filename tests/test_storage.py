from pitcharcade.models import Settings
from pitcharcade.storage import load_settings, save_settings


def test_settings_roundtrip(tmp_path, monkeypatch):
	monkeypatch.setenv("PITCHARCADE_HOME", str(tmp_path))
	monkeypatch.delenv("PITCHARCADE_SAMPLES", raising=False)
	assert load_settings() == Settings()
	s = Settings(difficulty="hard", mode="interval", backend="synth", eager_octaves=(3, 5))
	save_settings(s)
	assert load_settings() == s


def test_malformed_settings_fall_back_to_defaults(tmp_path, monkeypatch):
	monkeypatch.setenv("PITCHARCADE_HOME", str(tmp_path))
	monkeypatch.delenv("PITCHARCADE_SAMPLES", raising=False)
	(tmp_path / "settings.json").write_text("{not json")
	assert load_settings() == Settings()
	(tmp_path / "settings.json").write_text('{"difficulty": "impossible"}')
	assert load_settings() == Settings()


def test_env_overrides_sample_source(tmp_path, monkeypatch):
	monkeypatch.setenv("PITCHARCADE_HOME", str(tmp_path))
	monkeypatch.setenv("PITCHARCADE_SAMPLES", "https://example.com/piano.zip")
	assert load_settings().samples_source == "https://example.com/piano.zip"

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError

from .models import Settings

logger = logging.getLogger(__name__)

# Overrides the sample archive location (URL or local path)
ENV_SAMPLES = "PITCHARCADE_SAMPLES"


def _data_dir() -> Path:
	return Path(os.environ.get("PITCHARCADE_HOME", Path.home() / ".pitcharcade"))


def _settings_path() -> Path:
	dir_ = _data_dir()
	dir_.mkdir(parents=True, exist_ok=True)
	return dir_ / "settings.json"


def _load_raw() -> Dict[str, Any]:
	p = _settings_path()
	if not p.exists():
		return {}
	try:
		data = json.loads(p.read_text())
		return data if isinstance(data, dict) else {}
	except (OSError, ValueError) as e:
		logger.warning("Ignoring unreadable settings file %s: %s", p, e)
		return {}


def load_settings() -> Settings:
	raw = _load_raw()
	try:
		settings = Settings.model_validate(raw)
	except ValidationError as e:
		logger.warning("Invalid settings, using defaults: %s", e)
		settings = Settings()
	override = os.environ.get(ENV_SAMPLES)
	if override:
		settings = settings.model_copy(update={"samples_source": override})
	return settings


def save_settings(s: Settings) -> None:
	p = _settings_path()
	p.write_text(json.dumps(s.model_dump(mode="json"), indent=2))

"""Engine and layout settings for MindCanvas."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"


def get_data_dir() -> Path:
    """Get the application data directory."""
    data_dir = Path.home() / ".local" / "share" / "mindcanvas"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def _known(cls, data: dict) -> dict:
    # Filter to only known fields to handle schema evolution
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class LayoutConfig:
    """Sizing and spacing used by the tree layout."""
    grid_size: int = 20
    min_width: float = 100
    max_width: float = 400
    min_height: float = 40
    char_width: float = 14      # Rough width of one CJK glyph at 14px
    padding_x: float = 24       # Left + right padding
    h_gap: float = 80
    v_gap: float = 20
    image_default_width: float = 200
    link_card_width: float = 300
    link_card_height: float = 100

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "LayoutConfig":
        if not isinstance(data, dict):
            return cls()
        try:
            return cls(**_known(cls, data))
        except TypeError:
            return cls()

    @classmethod
    def from_json(cls, data: Optional[str]) -> "LayoutConfig":
        if not data:
            return cls()
        try:
            return cls.from_dict(json.loads(data))
        except json.JSONDecodeError:
            return cls()


@dataclass
class EngineConfig:
    """Settings for one canvas session."""
    history_limit: int = 50
    debounce_ms: int = 300
    strict: bool = False
    paste_offset: Tuple[float, float] = (40.0, 40.0)
    layout: LayoutConfig = field(default_factory=LayoutConfig)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EngineConfig":
        if not isinstance(data, dict):
            return cls()
        values = _known(cls, data)
        values["layout"] = LayoutConfig.from_dict(values.get("layout"))
        if "paste_offset" in values:
            try:
                dx, dy = values["paste_offset"]
                values["paste_offset"] = (float(dx), float(dy))
            except (TypeError, ValueError):
                del values["paste_offset"]
        try:
            return cls(**values)
        except TypeError:
            return cls()

    @classmethod
    def from_json(cls, data: Optional[str]) -> "EngineConfig":
        if not data:
            return cls()
        try:
            return cls.from_dict(json.loads(data))
        except json.JSONDecodeError:
            return cls()


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """Read settings from disk, then apply MINDCANVAS_* environment overrides.

    A missing or unreadable file yields the defaults.
    """
    path = path or (get_data_dir() / SETTINGS_FILE)
    config = EngineConfig()
    if path.exists():
        try:
            config = EngineConfig.from_json(path.read_text(encoding="utf-8"))
        except OSError as exc:
            logger.warning("Could not read settings %s: %s", path, exc)

    env = os.environ
    if env.get("MINDCANVAS_HISTORY_LIMIT"):
        try:
            config.history_limit = int(env["MINDCANVAS_HISTORY_LIMIT"])
        except ValueError:
            logger.warning("Ignoring MINDCANVAS_HISTORY_LIMIT=%r", env["MINDCANVAS_HISTORY_LIMIT"])
    if env.get("MINDCANVAS_DEBOUNCE_MS"):
        try:
            config.debounce_ms = int(env["MINDCANVAS_DEBOUNCE_MS"])
        except ValueError:
            logger.warning("Ignoring MINDCANVAS_DEBOUNCE_MS=%r", env["MINDCANVAS_DEBOUNCE_MS"])
    if env.get("MINDCANVAS_STRICT"):
        config.strict = _env_bool(env["MINDCANVAS_STRICT"])
    return config


def save_config(config: EngineConfig, path: Optional[Path] = None):
    path = path or (get_data_dir() / SETTINGS_FILE)
    path.write_text(config.to_json(), encoding="utf-8")

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .diagnostics import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MIRROR = "https://dl-cdn.alpinelinux.org/alpine/"
CONFIG_DIRNAME = ".config/ALPack"
CONFIG_FILENAME = "config.yaml"

SETTINGS_FIELDS = (
    "default_mirror",
    "cache_dir",
    "rootfs_dir",
    "cmd_rootfs",
    "release",
)


class Settings(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    default_mirror: str = DEFAULT_MIRROR
    cache_dir: str
    rootfs_dir: str
    cmd_rootfs: str = "proot"
    release: str = "latest-stable"

    @classmethod
    def defaults(cls, home: Path) -> "Settings":
        return cls(cache_dir=str(home / ".cache/ALPack"), rootfs_dir=str(home / ".ALPack"))

    def rootfs(self, environ: Optional[Mapping[str, str]] = None) -> Path:
        env = os.environ if environ is None else environ
        return Path(env.get("ALPACK_ROOTFS") or self.rootfs_dir)

    def cache(self, environ: Optional[Mapping[str, str]] = None) -> Path:
        env = os.environ if environ is None else environ
        return Path(env.get("ALPACK_CACHE") or self.cache_dir)

    def logs_dir(self, environ: Optional[Mapping[str, str]] = None) -> Path:
        return self.cache(environ) / "logs"


def config_path(home: Path, environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    override = env.get("ALPACK_CONFIG")
    if override:
        return Path(override)
    return home / CONFIG_DIRNAME / CONFIG_FILENAME


def load_settings(path: Path, home: Path) -> Settings:
    """Read settings from disk; a missing, empty or broken file is replaced by defaults."""
    if not path.exists():
        return _create(path, home)
    try:
        data = _load_data(path)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.warning("Failed to parse config %s (%s). Using defaults.", path, exc)
        return _create(path, home)
    if not data:
        logger.warning("Config file %s is empty. Using defaults.", path)
        return _create(path, home)
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping. Using defaults.", path)
        return _create(path, home)
    merged = Settings.defaults(home).model_dump()
    merged.update({key: value for key, value in data.items() if value is not None})
    try:
        return Settings(**merged)
    except ValidationError as exc:
        logger.warning("Invalid config %s (%s). Using defaults.", path, exc.errors()[0]["msg"])
        return _create(path, home)


def save_settings(settings: Settings, path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(settings.model_dump(), handle, sort_keys=False)
    except OSError as exc:
        raise ConfigurationError(f"Failed to write config file {path}: {exc}", location=str(path)) from exc


def diff_settings(old: Optional[Settings], new: Settings) -> List[Tuple[str, str, Optional[str]]]:
    """Return ``(field, new_value, old_value_if_changed)`` rows in display order."""
    rows: List[Tuple[str, str, Optional[str]]] = []
    for name in SETTINGS_FIELDS:
        new_value = getattr(new, name)
        old_value = getattr(old, name) if old is not None else None
        rows.append((name, new_value, old_value if old_value != new_value else None))
    return rows


def read_saved_settings(path: Path, home: Path) -> Optional[Settings]:
    if not path.exists():
        return None
    try:
        data = _load_data(path)
        if not isinstance(data, dict):
            return None
        merged: Dict[str, Any] = Settings.defaults(home).model_dump()
        merged.update(data)
        return Settings(**merged)
    except (OSError, ValueError, yaml.YAMLError, ValidationError):
        return None


def _create(path: Path, home: Path) -> Settings:
    default = Settings.defaults(home)
    try:
        save_settings(default, path)
    except ConfigurationError as exc:
        logger.warning("Failed to write default config file: %s", exc)
    return default


def _load_data(path: Path) -> Any:
    if path.suffix in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    if path.suffix == ".toml":
        try:
            import tomllib
        except ImportError:  # pragma: no cover - python <3.11
            import tomli as tomllib  # type: ignore

        with path.open("rb") as handle:
            return tomllib.load(handle)
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)

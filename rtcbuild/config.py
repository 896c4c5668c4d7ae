from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import UsageError
from .models import DEFAULT_FILENAME_PATTERN, DEFAULT_NAME_PATTERN, DEFAULT_VERSION_PATTERN

PACKAGE_ROOT = Path(__file__).resolve().parent

DEFAULT_REPO_URL = "https://webrtc.googlesource.com/src.git"
DEFAULT_DEPOT_TOOLS_URL = "https://chromium.googlesource.com/chromium/tools/depot_tools.git"

PATTERN_ENV_VARS = {
    "filename": "PACKAGE_FILENAME_PATTERN",
    "name": "PACKAGE_NAME_PATTERN",
    "version": "PACKAGE_VERSION_PATTERN",
}


class ConfigError(UsageError):
    """Raised when the settings file cannot be parsed."""


@dataclass(frozen=True)
class NamingPatterns:
    filename: str = DEFAULT_FILENAME_PATTERN
    name: str = DEFAULT_NAME_PATTERN
    version: str = DEFAULT_VERSION_PATTERN

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NamingPatterns":
        defaults = cls()
        return cls(
            filename=str(data.get("filename", defaults.filename)),
            name=str(data.get("name", defaults.name)),
            version=str(data.get("version", defaults.version)),
        )

    def with_environment(self, environ: Optional[Mapping[str, str]] = None) -> "NamingPatterns":
        """Apply ``PACKAGE_*_PATTERN`` overrides from the environment."""

        environ = os.environ if environ is None else environ
        overrides = {
            key: environ[variable]
            for key, variable in PATTERN_ENV_VARS.items()
            if environ.get(variable)
        }
        return replace(self, **overrides)


@dataclass(frozen=True)
class BuildSettings:
    """Site settings that rarely change between runs."""

    repo_url: str = DEFAULT_REPO_URL
    depot_tools_url: str = DEFAULT_DEPOT_TOOLS_URL
    depot_tools_dir: Path = PACKAGE_ROOT / "depot_tools"
    resource_dir: Path = PACKAGE_ROOT / "resource"
    patterns: NamingPatterns = field(default_factory=NamingPatterns)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base_dir: Optional[Path] = None) -> "BuildSettings":
        defaults = cls()
        base_dir = base_dir or Path.cwd()

        def _path(key: str, default: Path) -> Path:
            value = data.get(key)
            if value is None:
                return default
            path = Path(os.path.expanduser(str(value)))
            return path if path.is_absolute() else base_dir / path

        patterns = data.get("patterns", {})
        if not isinstance(patterns, dict):
            raise ConfigError("'patterns' must be a mapping")
        return cls(
            repo_url=str(data.get("repo_url", defaults.repo_url)),
            depot_tools_url=str(data.get("depot_tools_url", defaults.depot_tools_url)),
            depot_tools_dir=_path("depot_tools_dir", defaults.depot_tools_dir),
            resource_dir=_path("resource_dir", defaults.resource_dir),
            patterns=NamingPatterns.from_dict(patterns),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_url": self.repo_url,
            "depot_tools_url": self.depot_tools_url,
            "depot_tools_dir": str(self.depot_tools_dir),
            "resource_dir": str(self.resource_dir),
            "patterns": {
                "filename": self.patterns.filename,
                "name": self.patterns.name,
                "version": self.patterns.version,
            },
        }


def load_settings(path: str | Path | None = None) -> BuildSettings:
    """Read settings from a YAML (or JSON) file; no path means defaults."""

    if path is None:
        return BuildSettings()
    path = Path(path)
    try:
        raw_text = path.read_text()
    except OSError as exc:
        raise ConfigError(f"Cannot read settings file {path}: {exc}") from exc
    try:
        raw_data = yaml.safe_load(raw_text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed settings file {path}: {exc}") from exc

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise ConfigError("Settings file must contain a top-level mapping")
    return BuildSettings.from_dict(raw_data, base_dir=path.resolve().parent)

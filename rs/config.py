"""
Ridi Shelf - Configuration

Defaults for the reader's on-disk layout, optionally overridden by a JSON file.

Expected JSON format (every field optional):
{
    "prefs_path": "~/Library/Preferences/com.ridibooks.Ridibooks.plist",
    "io_timeout": 60,
    "ignored_folders": ["QtWebEngine", "fontcache"]
}
"""
import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

# Application-wide stream cipher key for the preference store
APP_KEY = '0c2f1bb4acb9f023'

DEVICE_ID_FIELD = 'device.device_id'
DEFAULT_PREFS_PATH = '~/Library/Preferences/com.ridibooks.Ridibooks.plist'
DEFAULT_IO_TIMEOUT = 60.0

# Non-book folders the reader keeps next to its libraries
DEFAULT_IGNORED_FOLDERS = ('QtWebEngine', 'fontcache')


@dataclass(frozen=True)
class Settings:
    """Run settings shared by the library walker and the CLI."""
    prefs_path: Path = field(default_factory=lambda: Path(DEFAULT_PREFS_PATH).expanduser())
    io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT
    ignored_folders: Tuple[str, ...] = DEFAULT_IGNORED_FOLDERS

    def with_overrides(self, **overrides: Any) -> 'Settings':
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return _coerce(replace(self, **values))


def _coerce(settings: Settings) -> Settings:
    timeout = settings.io_timeout
    if timeout is not None:
        timeout = float(timeout)
        if timeout <= 0:
            raise ValueError(f"io_timeout must be positive, got {timeout}")

    return Settings(
        prefs_path=Path(settings.prefs_path).expanduser(),
        io_timeout=timeout,
        ignored_folders=tuple(settings.ignored_folders),
    )


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from a JSON file, falling back to defaults.

    Raises:
        ValueError: If the file contains unknown fields or bad values
        FileNotFoundError: If the file doesn't exist
    """
    if path is None:
        return Settings()

    data: Dict[str, Any] = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be an object, got {type(data).__name__}")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config fields: {', '.join(unknown)}")

    return Settings().with_overrides(**data)

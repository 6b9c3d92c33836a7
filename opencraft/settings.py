"""User settings (username, last launched version) kept in settings.json."""
import json
import logging
import pathlib
from dataclasses import asdict, dataclass
from typing import Optional

log = logging.getLogger(__name__)


@dataclass
class UserSettings:
    username: str = 'Player'
    last_version: Optional[str] = None


def load_settings(settings_file: pathlib.Path) -> UserSettings:
    settings = UserSettings()
    try:
        if settings_file.exists():
            data = json.loads(settings_file.read_text('utf-8'))
            settings.username = data.get('username') or settings.username
            settings.last_version = data.get('last_version')
    except (OSError, ValueError, AttributeError) as e:
        log.warning(f"Could not read {settings_file}: {e}. Using defaults.")
    return settings


def save_settings(settings_file: pathlib.Path, settings: UserSettings) -> None:
    settings_file.parent.mkdir(parents=True, exist_ok=True)
    settings_file.write_text(json.dumps(asdict(settings), indent=2), encoding='utf-8')

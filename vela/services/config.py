import json
import os
from pathlib import Path
from typing import List, Optional

from vela.models.profile import Profile

CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "vela"
PROFILES_FILE = CONFIG_DIR / "profiles.json"


class ConfigService:
    """Load and save profiles/preferences in ~/.config/vela/profiles.json.

    Passwords never go into this file.
    """

    # --- Internal helpers ---

    @staticmethod
    def _load_raw() -> dict:
        if not PROFILES_FILE.exists():
            return {}
        try:
            data = json.loads(PROFILES_FILE.read_text())
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _write_raw(data: dict):
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        PROFILES_FILE.write_text(json.dumps(data, indent=2))

    # --- Profiles ---

    @staticmethod
    def load_profiles() -> List[Profile]:
        profiles = []
        for raw in ConfigService._load_raw().get("profiles", []):
            try:
                profiles.append(Profile.from_dict(raw))
            except (TypeError, ValueError):
                continue
        return profiles

    @staticmethod
    def save_profiles(profiles: List[Profile]):
        data = ConfigService._load_raw()
        data["profiles"] = [p.to_dict() for p in profiles]
        ConfigService._write_raw(data)

    @staticmethod
    def find_profile(name: str) -> Optional[Profile]:
        for p in ConfigService.load_profiles():
            if p.name == name:
                return p
        return None

    @staticmethod
    def add_profile(profile: Profile) -> List[Profile]:
        profiles = ConfigService.load_profiles()
        profiles.append(profile)
        ConfigService.save_profiles(profiles)
        return profiles

    @staticmethod
    def update_profile(name: str, profile: Profile) -> List[Profile]:
        profiles = ConfigService.load_profiles()
        for i, p in enumerate(profiles):
            if p.name == name:
                profiles[i] = profile
                break
        ConfigService.save_profiles(profiles)
        return profiles

    @staticmethod
    def delete_profile(name: str) -> List[Profile]:
        profiles = [p for p in ConfigService.load_profiles() if p.name != name]
        ConfigService.save_profiles(profiles)
        return profiles

    # --- Preferences ---

    @staticmethod
    def get_preference(key: str, default=None):
        return ConfigService._load_raw().get("preferences", {}).get(key, default)

    @staticmethod
    def set_preference(key: str, value):
        data = ConfigService._load_raw()
        prefs = data.get("preferences", {})
        prefs[key] = value
        data["preferences"] = prefs
        ConfigService._write_raw(data)

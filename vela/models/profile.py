import enum
from dataclasses import asdict, dataclass, replace
from typing import Dict, Optional


class AuthMethod(str, enum.Enum):
    KEY = "key"
    PASSWORD = "password"


@dataclass
class Profile:
    """A saved connection. Read-only input to ``RemoteSession.connect``."""

    name: str = ""
    host: str = ""
    port: int = 22
    user: str = ""
    auth: AuthMethod = AuthMethod.PASSWORD
    key_path: Optional[str] = None
    remote_path: Optional[str] = None
    local_start_path: Optional[str] = None

    def __post_init__(self):
        self.auth = AuthMethod(self.auth)
        self.port = int(self.port)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["auth"] = self.auth.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Profile":
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)

    def updated(self, fields: Dict[str, str]) -> "Profile":
        """Copy with ``field=value`` edits from the console applied.

        Field names are those of ``EDITABLE_FIELDS``; a blank value clears an
        optional path. Raises ``ValueError`` with a user-facing message.
        """
        changes = {}
        for key, raw in fields.items():
            if key not in EDITABLE_FIELDS:
                raise ValueError(f"Unknown field '{key}' (use: {', '.join(EDITABLE_FIELDS)})")
            attr = _FIELD_ATTRS.get(key, key)
            value = raw.strip()
            if attr == "port":
                if not value.isdigit() or not 0 < int(value) < 65536:
                    raise ValueError(f"Invalid port '{raw}'")
                changes[attr] = int(value)
            elif attr == "auth":
                try:
                    changes[attr] = AuthMethod(value)
                except ValueError:
                    raise ValueError("auth must be 'key' or 'password'") from None
            elif attr in _OPTIONAL_ATTRS:
                changes[attr] = value or None
            else:
                changes[attr] = value
        profile = replace(self, **changes)
        missing = [f for f in ("name", "host", "user") if not getattr(profile, f)]
        if missing:
            raise ValueError(f"Missing {', '.join(missing)}")
        return profile

    @property
    def display_name(self) -> str:
        return self.name or f"{self.user}@{self.host}"

    @property
    def remote_start(self) -> Optional[str]:
        """Remote start directory, or None when absent or blank."""
        return _non_blank(self.remote_path)

    @property
    def local_start(self) -> Optional[str]:
        return _non_blank(self.local_start_path)


# Console field name -> attribute
EDITABLE_FIELDS = ("host", "port", "user", "auth", "key", "remote", "local")
_FIELD_ATTRS = {"key": "key_path", "remote": "remote_path", "local": "local_start_path"}
_OPTIONAL_ATTRS = set(_FIELD_ATTRS.values())


def _non_blank(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None

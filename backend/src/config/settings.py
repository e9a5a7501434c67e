"""Dynaconf settings configuration"""

from pathlib import Path
from dynaconf import Dynaconf, Validator

PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

settings = Dynaconf(
    envvar_prefix="APP",
    settings_files=[
        str(CONFIG_DIR / "settings.toml"),
        str(CONFIG_DIR / "settings.local.toml"),
        str(CONFIG_DIR / ".secrets.toml"),
    ],
    environments=True,
    env_switcher="APP_ENV",
)

settings.validators.register(
    Validator("DATABASE_PATH", must_exist=True),
    Validator("SESSIONS_PATH", must_exist=True),
    Validator("GATEWAY_URL", must_exist=True),
    Validator("GATEWAY_API_KEY", must_exist=True, min_len=16),
    Validator("RATE_LIMIT_MESSAGES", gt=0),
    Validator("RATE_LIMIT_WINDOW", gt=0),
    Validator("RATE_LIMIT_MIN_INTERVAL_MS", gte=0),
    Validator("SEND_TIMEOUT", gt=0),
    Validator("RECONNECT_MAX_ATTEMPTS", gte=0),
)


def validate_settings():
    """Validate all settings on startup."""
    settings.validators.validate()


def resolve_path(value: str) -> Path:
    """Resolve a configured path relative to the project root."""
    path = Path(value)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path

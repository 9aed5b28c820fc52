import json
from pathlib import Path

from pydantic import AliasChoices, Field, computed_field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # API
    app_name: str = "pushrelay"
    app_version: str = "0.3.1"

    # Paths
    state_dir: str = Field(
        default=str(Path.home() / ".pushrelay"),
        validation_alias=AliasChoices("state_dir", "PUSHRELAY_STATE"),
        description="Directory for state files (config.json, push.db)",
    )

    # VAPID
    vapid_subject: str = "mailto:soporte@praxis-hub.co"
    vapid_autogenerate: bool = False
    jwt_expiry_s: int = Field(default=12 * 60 * 60, gt=0, le=24 * 60 * 60)

    # Delivery
    push_ttl_s: int = 86_400
    push_timeout_s: float = 10.0
    send_deadline_s: float | None = 30.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def db_path(self) -> Path:
        """SQLite database for config rows and subscriptions."""
        return Path(self.state_dir) / "push.db"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


_override: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings instance."""
    if _override:
        return _override
    settings = Settings()
    return _load_config_file(settings)


def _load_config_file(settings: Settings) -> Settings:
    """Load and merge config.json if it exists."""
    config_path = Path(settings.state_dir) / "config.json"
    if not config_path.exists():
        return settings

    try:
        data = json.loads(config_path.read_text())
        if not isinstance(data, dict):
            return settings

        if "state_dir" in data and isinstance(data["state_dir"], str):
            data["state_dir"] = str(Path(data["state_dir"]).expanduser())

        return settings.model_copy(update=data)
    except (json.JSONDecodeError, OSError):
        return settings


def override_settings(s: Settings | None) -> None:
    """Swap in a custom Settings (use None to reset)."""
    global _override  # noqa: PLW0603
    _override = s

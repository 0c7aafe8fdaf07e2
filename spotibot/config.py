"""Spotibot configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# === Path Configuration ===
PACKAGE_DIR = Path(__file__).parent
PROJECT_DIR = PACKAGE_DIR.parent
DEFAULT_DATA_DIR = PROJECT_DIR / "data"


class Settings(BaseSettings):
    """Bot settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=PROJECT_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Discord
    discord_bot_token: str = Field(..., description="Discord bot token")
    discord_guild_id: str = Field(default="", description="Guild for fast slash command sync")
    admins: str = Field(default="", description="Comma separated Discord user IDs")

    # Spotify OAuth
    spotify_client_id: str = Field(..., description="Spotify OAuth Client ID")
    spotify_client_secret: str = Field(..., description="Spotify OAuth Client Secret")
    spotify_redirect_uri: str = Field(
        default="http://localhost:3000/callback", description="Spotify OAuth redirect URI"
    )
    spotify_callback_port: int | None = Field(
        default=None, description="Port for the OAuth callback server (disabled when unset)"
    )

    # Storage
    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Directory for JSON state")

    # Polling
    poll_interval: float = Field(default=10.0, ge=1.0, description="Seconds between cycles")
    request_delay: float = Field(default=0.5, ge=0.0, description="Seconds between users")
    refresh_cooldown: float = Field(default=0.75, ge=0.0, description="Pause after a refresh")
    oauth_state_ttl: int = Field(default=600, gt=0, description="Pending OAuth state lifetime")
    history_scan_limit: int = Field(default=100, gt=0, le=100, description="Discovery window")

    # Novelty ping
    ping_keyword: str = Field(default="drake", description="Artist substring for the ping roll")
    ping_chance: float = Field(default=0.05, ge=0.0, le=1.0, description="Ping probability")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    mute_spotify_debug: bool = Field(default=False, description="Silence polling chatter")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @property
    def admin_ids(self) -> set[str]:
        """Discord user IDs allowed to manage the shared channel"""
        return {part.strip() for part in self.admins.split(",") if part.strip()}

    @property
    def callback_enabled(self) -> bool:
        return self.spotify_callback_port is not None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]

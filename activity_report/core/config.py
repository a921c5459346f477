from functools import lru_cache
from pathlib import Path
from typing import Final

from pydantic_settings import BaseSettings, SettingsConfigDict

REQUIRED_DISCORD_SETTINGS: Final[tuple[str, ...]] = (
    "DISCORD_CLIENT_ID",
    "DISCORD_CLIENT_SECRET",
    "DISCORD_BOT_TOKEN",
    "DISCORD_ALLOWED_GUILD_ID",
    "DISCORD_ALLOWED_ROLE_IDS",
    "DISCORD_POST_CHANNEL_ID",
)

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_ROOT_ENV_FILE = _PROJECT_ROOT / ".env"


class BackendSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ROOT_ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # FastAPI app
    BACKEND_APP_NAME: str = "Activity Report Backend"
    BACKEND_APP_VERSION: str = "0.1.0"
    BACKEND_ENV: str = "development"
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 3000
    BACKEND_LOG_LEVEL: str = "INFO"
    BACKEND_LOG_FORMAT: str = "text"
    BACKEND_ENABLE_ACCESS_LOG: bool = True
    BACKEND_FRONTEND_URL: str = "http://localhost:5173"
    BACKEND_CORS_ENABLED: bool = True
    BACKEND_CORS_ALLOW_METHODS: str = "GET,POST,OPTIONS"
    BACKEND_CORS_ALLOW_HEADERS: str = "Content-Type,Accept,Origin,X-Requested-With"
    BACKEND_CORS_EXPOSE_HEADERS: str = "X-Request-ID"
    BACKEND_CORS_MAX_AGE_SECONDS: int = 600

    # Authorization gate
    BACKEND_AUTH_CACHE_TTL_SECONDS: int = 300
    BACKEND_AUTH_STATE_TTL_SECONDS: int = 600

    # Session storage
    BACKEND_SESSION_BACKEND: str = "redis"
    BACKEND_SESSION_PREFIX: str = "activity_report:session"
    BACKEND_SESSION_TTL_SECONDS: int = 60 * 60 * 24 * 7
    BACKEND_SESSION_COOKIE_NAME: str = "activity_report_session"
    BACKEND_SESSION_COOKIE_PATH: str = "/"
    BACKEND_SESSION_COOKIE_DOMAIN: str = ""
    BACKEND_SESSION_COOKIE_SAMESITE: str = "lax"
    BACKEND_SESSION_COOKIE_SECURE: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"

    # Uploads
    BACKEND_UPLOAD_MAX_BYTES: int = 8 * 1024 * 1024

    # Discord
    DISCORD_API_BASE_URL: str = "https://discord.com/api/v10"
    DISCORD_CLIENT_ID: str = ""
    DISCORD_CLIENT_SECRET: str = ""
    DISCORD_REDIRECT_URI: str = "http://localhost:3000/auth/discord/callback"
    DISCORD_OAUTH_SCOPES: str = "identify guilds guilds.members.read"
    DISCORD_BOT_TOKEN: str = ""
    DISCORD_ALLOWED_GUILD_ID: str = ""
    DISCORD_ALLOWED_ROLE_IDS: str = ""
    DISCORD_POST_CHANNEL_ID: str = ""
    DISCORD_HTTP_TIMEOUT_SECONDS: float = 15.0

    # Link previews
    LINK_PREVIEW_API_BASE_URL: str = "https://api.fxtwitter.com"
    LINK_PREVIEW_TIMEOUT_SECONDS: float = 5.0

    # Signed tokens
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_LEEWAY_SECONDS: int = 30

    @property
    def allowed_role_ids(self) -> frozenset[str]:
        return frozenset(self._split_csv(self.DISCORD_ALLOWED_ROLE_IDS))

    @property
    def oauth_scopes(self) -> str:
        return " ".join(
            scope.strip() for scope in self.DISCORD_OAUTH_SCOPES.split() if scope.strip()
        )

    @property
    def frontend_url(self) -> str:
        return self.BACKEND_FRONTEND_URL.rstrip("/")

    @property
    def session_cookie_domain(self) -> str | None:
        cleaned = self.BACKEND_SESSION_COOKIE_DOMAIN.strip()
        return cleaned or None

    @property
    def session_cookie_samesite(self) -> str:
        normalized = self.BACKEND_SESSION_COOKIE_SAMESITE.strip().lower()
        if normalized not in {"lax", "strict", "none"}:
            return "lax"
        if normalized == "none" and not self.BACKEND_SESSION_COOKIE_SECURE:
            return "lax"
        return normalized

    @property
    def cors_allow_origins(self) -> list[str]:
        return [self.frontend_url]

    @property
    def cors_allow_methods(self) -> list[str]:
        return self._split_csv(self.BACKEND_CORS_ALLOW_METHODS)

    @property
    def cors_allow_headers(self) -> list[str]:
        return self._split_csv(self.BACKEND_CORS_ALLOW_HEADERS)

    @property
    def cors_expose_headers(self) -> list[str]:
        return self._split_csv(self.BACKEND_CORS_EXPOSE_HEADERS)

    @staticmethod
    def _split_csv(raw: str) -> list[str]:
        return [item.strip() for item in raw.split(",") if item.strip()]

    def missing_required_settings(self) -> list[str]:
        return [name for name in REQUIRED_DISCORD_SETTINGS if not str(getattr(self, name)).strip()]


@lru_cache
def get_settings() -> BackendSettings:
    return BackendSettings()

"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with NOTIFYRELAY_
prefix (and from a local .env file, if present).

Learn: Persistence is switched on by configuration alone. Either set
NOTIFYRELAY_DATABASE_URL, or the classic DB_* parts (host, port, user,
password, name) and the URL is assembled for you. With neither, the relay
runs dispatch-only.
"""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """All app configuration. Set via NOTIFYRELAY_* env vars."""

    # Database (empty → persistence disabled)
    database_url: str = ""
    db_host: str = ""
    db_port: Optional[int] = None
    db_user: str = ""
    db_password: str = ""
    db_name: str = ""
    db_sslmode: str = ""

    # Producer credentials (sent as `key` / `secret` headers)
    api_key: str = "key"
    api_secret: str = "secret"

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS
    cors_origins: list[str] = ["*"]

    # Delivery / persistence deadlines (seconds, 0 disables)
    delivery_timeout_seconds: float = 5.0
    persist_timeout_seconds: float = 10.0

    # Search
    search_limit: int = 100

    model_config = SettingsConfigDict(
        env_prefix="NOTIFYRELAY_",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure the default credentials are changed in non-development environments."""
        if self.environment != "development" and (
            self.api_key == "key" or self.api_secret == "secret"
        ):
            raise ValueError(
                "NOTIFYRELAY_API_KEY and NOTIFYRELAY_API_SECRET must be set in "
                "non-development environments."
            )
        return self

    @property
    def resolved_database_url(self) -> str:
        """The database URL to use, or "" when persistence is disabled."""
        if self.database_url:
            return self.database_url
        if not all([self.db_host, self.db_port, self.db_user, self.db_password, self.db_name]):
            return ""
        query = {"ssl": self.db_sslmode} if self.db_sslmode else {}
        url = URL.create(
            "postgresql+asyncpg",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
            query=query,
        )
        return url.render_as_string(hide_password=False)

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.resolved_database_url)


# Process-wide default; create_app() also accepts an explicit Settings
settings = Settings()

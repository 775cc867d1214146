"""Runtime configuration for the sponsor sharing core.

Values come from the environment or a local `.env` file. Without `VAULT_SECRET`
the vault key is generated once and kept in `VAULT_KEY_FILE`.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a local `.env` file."""

    # Local identity; the row store is scoped to a single on-device user
    local_user_id: str = Field(default="local", alias="LOCAL_USER_ID")

    # Local row store
    database_url: str = Field(default="sqlite:///./recovery.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Content-at-rest encryption (Fernet key, urlsafe base64)
    vault_secret: str | None = Field(default=None, alias="VAULT_SECRET")
    vault_key_file: str = Field(default=".recovery-vault.key", alias="VAULT_KEY_FILE")

    # Sponsor pairing
    sponsor_code_validity_days: int = Field(default=7, alias="SPONSOR_CODE_VALIDITY_DAYS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def is_sqlite(self) -> bool:
        """Return True when the row store is backed by SQLite."""
        return self.database_url.startswith("sqlite")


settings = Settings()

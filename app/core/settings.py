from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="SPAR Lookup API", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    pii_masking_enabled: bool = Field(default=True, alias="PII_MASKING_ENABLED")

    spar_endpoint_url: str | None = Field(default=None, alias="SPAR_ENDPOINT_URL")
    spar_customer_number: str | None = Field(default=None, alias="SPAR_CUSTOMER_NUMBER")
    spar_assignment_id: str | None = Field(default=None, alias="SPAR_ASSIGNMENT_ID")
    spar_end_user_id: str = Field(default="spar-lookup", alias="SPAR_END_USER_ID")
    spar_cert_dir: str = Field(default="./certs", alias="SPAR_CERT_DIR")
    spar_timeout_seconds: float = Field(default=10.0, alias="SPAR_TIMEOUT_SECONDS")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @property
    def registry_configured(self) -> bool:
        return all((self.spar_endpoint_url, self.spar_customer_number, self.spar_assignment_id))

    @property
    def spar_cert_paths(self) -> tuple[Path, Path, Path]:
        """Client certificate, private key and CA bundle, in that order."""
        base = Path(self.spar_cert_dir)
        return base / "bolag-a.crt", base / "bolag-a.key", base / "bolag-a.pem"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

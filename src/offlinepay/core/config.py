from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration using environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Local store
    database_url: str = Field(default="sqlite:///data/offlinepay.db")

    # Remote ledger
    ledger_base_url: str = Field(default="http://localhost:54321")
    ledger_api_key: str = Field(default="")
    ledger_timeout_s: float = Field(default=10.0, gt=0)

    # Sync policy
    remote_call_timeout_s: float | None = Field(default=10.0, gt=0)
    max_sync_retries: int = Field(default=2, ge=0)
    retry_rejected_transfers: bool = Field(default=True)

    # Auto-sync scheduling
    online_settle_delay_s: float = Field(default=1.0, ge=0)
    startup_sync_delay_s: float = Field(default=2.0, ge=0)

    # Connectivity probe (empty URL disables it)
    connectivity_probe_url: str = Field(default="")
    connectivity_probe_interval_s: float = Field(default=15.0, gt=0)

    log_level: str = Field(default="INFO")


settings = Settings()

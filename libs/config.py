"""
Single configuration object for the Slack purchase bridge.

* Uses Pydantic-BaseSettings: values come from environment variables
  (or a `.env` file, if present).
* `get_settings()` returns a *cached* object, so it is safe to import anywhere
  without creating duplicates.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SHEETS_BASE_URL = "https://docs.google.com/spreadsheets/d"

# --------------------------------------------------------------------------- #
# Main settings
# --------------------------------------------------------------------------- #


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # ── Slack ────────────────────────────────────────────────────────────────
    slack_signing_secret: str = Field("", alias="SLACK_SIGNING_SECRET")
    slack_bot_token: str = Field("", alias="SLACK_BOT_TOKEN")

    # ── Google Sheets ────────────────────────────────────────────────────────
    google_sheets_id: str = Field("", alias="GOOGLE_SHEETS_ID")
    google_service_account_email: str = Field("", alias="GOOGLE_SERVICE_ACCOUNT_EMAIL")
    # Private key as stored in env: newlines escaped as "\n"
    google_private_key: str = Field("", alias="GOOGLE_PRIVATE_KEY")
    sheet_name: str = Field("Sheet1", alias="SHEET_NAME")
    ledger_timezone: str = Field("Asia/Seoul", alias="LEDGER_TIMEZONE")

    # ── HTTP ─────────────────────────────────────────────────────────────────
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    port: int = Field(3000, alias="PORT")

    # ── Sentry ───────────────────────────────────────────────────────────────
    sentry_dsn: Optional[str] = Field(None, alias="SENTRY_DSN")
    env: str = Field("local", alias="APP_ENV")

    # ── ngrok (local development tunnel) ─────────────────────────────────────
    enable_ngrok: bool = Field(False, alias="ENABLE_NGROK")
    ngrok_authtoken: Optional[str] = Field(None, alias="NGROK_AUTHTOKEN")
    ngrok_domain: Optional[str] = Field(None, alias="NGROK_DOMAIN")

    # ── Metrics / logging ────────────────────────────────────────────────────
    metrics_port: Optional[int] = Field(None, alias="METRICS_PORT")
    log_dir: Optional[Path] = Field(None, alias="LOG_DIR")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # ── Validation ───────────────────────────────────────────────────────────
    @model_validator(mode="after")
    def _validate_dirs(self) -> "Settings":
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def google_private_key_pem(self) -> str:
        """PEM key with real newlines, as the Google auth library expects."""
        return self.google_private_key.replace("\\n", "\n")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ledger_range(self) -> str:
        """A1 range covering the five ledger columns (date → note)."""
        return f"{self.sheet_name}!A:E"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def spreadsheet_url(self) -> str:
        return f"{SHEETS_BASE_URL}/{self.google_sheets_id}"


# --------------------------------------------------------------------------- #
# Public helper
# --------------------------------------------------------------------------- #


@lru_cache(maxsize=1)
def get_settings() -> Settings:  # noqa: D401
    """Returns the **singleton** Settings object."""
    return Settings()


# --------------------------------------------------------------------------- #
# CLI-debug
# --------------------------------------------------------------------------- #

if __name__ == "__main__":
    import json

    _SECRETS = {"slack_signing_secret", "slack_bot_token", "google_private_key",
                "google_private_key_pem", "ngrok_authtoken", "sentry_dsn"}
    dump = {
        key: ("***" if key in _SECRETS and value else value)
        for key, value in get_settings().model_dump().items()
    }
    print(json.dumps(dump, indent=2, default=str))

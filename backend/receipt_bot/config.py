from functools import lru_cache
import json
import os
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import Field, field_validator, model_validator

_ENV_CANDIDATES = (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path(__file__).resolve().parent.parent / ".env",
    Path.cwd() / ".env",
)

for env_path in _ENV_CANDIDATES:
    if env_path.is_file():
        load_dotenv(env_path, override=False)
        break


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    database_url: str = "postgresql+psycopg://postgres:postgres@db:5432/receipts"
    telegram_bot_token: str | None = Field(default=None, alias="TELEGRAM_BOT")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    ai_model: str = "gpt-4o-mini"
    default_currency: str = "USD"
    default_locale: str = "en"
    supported_locales: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["en", "ru"])
    upload_dir: Path = Path("uploads") / "temp"
    download_timeout_seconds: float = 30.0
    session_idle_timeout_seconds: int = 15 * 60
    ocr_languages: str = "eng+rus"

    model_config = SettingsConfigDict(env_file=None, populate_by_name=True)

    @field_validator("supported_locales", mode="before")
    @classmethod
    def parse_supported_locales(cls, value: object) -> list[str]:
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("["):
                try:
                    return json.loads(stripped)
                except json.JSONDecodeError:
                    pass
            return [item.strip().lower() for item in stripped.split(",") if item.strip()]
        if isinstance(value, (list, tuple)):
            return [str(item).lower() for item in value]
        raise ValueError("Invalid supported_locales format.")

    @field_validator("default_currency")
    @classmethod
    def normalise_currency(cls, value: str) -> str:
        code = value.strip().upper()
        if len(code) != 3:
            raise ValueError("default_currency must be a 3-letter ISO code.")
        return code

    @model_validator(mode="after")
    def populate_from_env(self) -> "Settings":
        if not self.telegram_bot_token:
            self.telegram_bot_token = os.getenv("TELEGRAM_BOT")
        if not self.openai_api_key:
            self.openai_api_key = os.getenv("OPENAI_API_KEY")
        if self.default_locale not in self.supported_locales:
            self.supported_locales = [self.default_locale, *self.supported_locales]
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""
    return Settings()

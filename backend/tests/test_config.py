import pytest
from pydantic import ValidationError

from receipt_bot.config import Settings


def test_locales_accept_csv_and_json(monkeypatch):
    monkeypatch.setenv("SUPPORTED_LOCALES", "EN, ru")
    assert Settings().supported_locales == ["en", "ru"]

    monkeypatch.setenv("SUPPORTED_LOCALES", '["ru"]')
    settings = Settings(default_locale="en")
    assert settings.supported_locales == ["en", "ru"]


def test_currency_is_normalised_and_checked():
    assert Settings(default_currency=" uzs ").default_currency == "UZS"
    with pytest.raises(ValidationError):
        Settings(default_currency="EURO")


def test_tokens_read_from_environment(monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT", "123:abc")
    monkeypatch.setenv("SESSION_IDLE_TIMEOUT_SECONDS", "60")
    settings = Settings()
    assert settings.telegram_bot_token == "123:abc"
    assert settings.session_idle_timeout_seconds == 60

# kitebot/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(RuntimeError):
    """Required configuration is missing; the process cannot start."""


# env var name -> settings attribute
REQUIRED_AT_STARTUP = {
    "TELEGRAM_BOT_TOKEN": "telegram_bot_token",
    "KITE_API_KEY": "kite_api_key",
    "KITE_API_SECRET": "kite_api_secret",
    "KITE_REDIRECT_URL": "kite_redirect_url",
}


class Settings(BaseSettings):
    app_env: str = "dev"
    port: int = 8000
    log_level: str = "INFO"

    # Telegram
    telegram_bot_token: str | None = None

    # Zerodha / Kite
    kite_api_key: str | None = None
    kite_api_secret: str | None = None
    kite_redirect_url: str | None = None

    # SQLite file holding sessions + ai_credits
    db_file: str = "kite_bot.db"

    # Gemini (optional; AI analysis is disabled without a key)
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"

    # IMPORTANT: ignore extra keys in .env to avoid crashes
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    def missing_required(self) -> list[str]:
        return [env for env, attr in REQUIRED_AT_STARTUP.items() if not getattr(self, attr)]

    def require_startup_values(self) -> None:
        """Raise ConfigError naming every required variable that is unset."""
        missing = self.missing_required()
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Please verify your .env file."
            )

    @property
    def database_url(self) -> str:
        return f"sqlite+aiosqlite:///{self.db_file}"


settings = Settings()

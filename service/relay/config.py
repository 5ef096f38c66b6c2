from pydantic_settings import BaseSettings
from functools import lru_cache

from relay.agents.prompts import SYSTEM_PROMPT


class Settings(BaseSettings):
    # Telegram
    telegram_bot_token: str = ""
    telegram_webhook_secret: str = ""  # Optional: sent back by Telegram as X-Telegram-Bot-Api-Secret-Token
    telegram_parse_mode: str = ""  # Optional: "HTML" / "MarkdownV2" for answers

    # Completion backend (any OpenAI-compatible chat completions API)
    mistral_api_key: str = ""
    completion_base_url: str = "https://api.mistral.ai/v1"
    completion_model: str = "mistral-tiny"
    completion_temperature: float = 0.7
    completion_max_tokens: int = 500
    system_prompt: str = SYSTEM_PROMPT

    # Transport: "webhook" (push) or "polling" (pull)
    transport_mode: str = "webhook"
    public_base_url: str = ""  # e.g. https://relay.example.com
    project_domain: str = ""  # Legacy Glitch deployments: <domain>.glitch.me
    port: int = 3000

    # Long polling
    poll_timeout: int = 30
    poll_backoff_seconds: float = 5.0
    drop_pending_updates: bool = False

    # Logging
    log_level: str = "INFO"

    # Delivery
    max_message_length: int = 4096

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def webhook_base_url(self) -> str:
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        if self.project_domain:
            return f"https://{self.project_domain}.glitch.me"
        return ""

    @property
    def is_polling(self) -> bool:
        return self.transport_mode.strip().lower() == "polling"

    def missing_credentials(self) -> list[str]:
        """Names of required environment variables that are empty."""
        missing = []
        if not self.telegram_bot_token:
            missing.append("TELEGRAM_BOT_TOKEN")
        if not self.mistral_api_key:
            missing.append("MISTRAL_API_KEY")
        return missing


@lru_cache()
def get_settings() -> Settings:
    return Settings()

"""Application settings loaded from environment variables and ``.env``."""

from pathlib import Path
from typing import Annotated, Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration.

    Secrets are kept as ``SecretStr``; use the ``*_str`` properties when the
    plain value is needed (e.g. to build an SDK client).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Credentials
    telegram_bot_token: SecretStr
    telegram_bot_username: str = ""
    bot_name: str = "Budgetbot"
    openai_api_key: SecretStr
    openai_base_url: Optional[str] = None

    # Web search tool, enabled when a key is set
    tavily_api_key: Optional[SecretStr] = None

    # Inference
    model_default: str = "gpt-4o"
    model_cheap: str = "gpt-4o-mini"
    max_output_tokens: int = Field(default=4096, gt=0)
    max_history: int = Field(default=50, gt=0)
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=2, ge=0)

    # Budget and background loop
    daily_token_budget: int = 100_000
    tick_interval_seconds: float = Field(default=30.0, gt=0)

    # Sessions
    max_cached_sessions: int = Field(default=20, gt=0)
    session_flush_delay_seconds: float = Field(default=1.0, ge=0)

    # Storage and locale
    workspace_dir: Path = Path.home() / ".budgetbot"
    timezone: str = "UTC"

    # Access
    allow_list: Annotated[List[str], NoDecode] = Field(default_factory=list)
    bot_name_aliases: Annotated[List[str], NoDecode] = Field(default_factory=list)
    max_message_length: int = Field(default=4000, gt=0)

    log_level: str = "INFO"

    @field_validator("daily_token_budget")
    @classmethod
    def _budget_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("daily_token_budget must be greater than zero")
        return value

    @field_validator("telegram_bot_token", "openai_api_key")
    @classmethod
    def _secret_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @field_validator("allow_list", "bot_name_aliases", mode="before")
    @classmethod
    def _split_csv(cls, value: object) -> object:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("allow_list")
    @classmethod
    def _digits_only(cls, value: List[str]) -> List[str]:
        # Ids are compared as digit strings (Telegram user ids)
        digits = ("".join(ch for ch in item if ch.isdigit()) for item in value)
        ids = [item for item in digits if item]
        # An empty list admits everyone, so a list of only bad entries is an error
        if value and not ids:
            raise ValueError("allow_list has no numeric user ids")
        return ids

    @property
    def telegram_bot_token_str(self) -> str:
        return self.telegram_bot_token.get_secret_value()

    @property
    def openai_api_key_str(self) -> str:
        return self.openai_api_key.get_secret_value()

    @property
    def tavily_api_key_str(self) -> Optional[str]:
        if self.tavily_api_key is None:
            return None
        return self.tavily_api_key.get_secret_value().strip() or None

    @property
    def tz(self) -> ZoneInfo:
        """Deployment timezone used for all local-time decisions."""
        return ZoneInfo(self.timezone)


class ConfigurationError(Exception):
    """Settings are missing or invalid; the process cannot start."""


def load_settings(**overrides: Any) -> Settings:
    """Build ``Settings`` from the environment, wrapping validation errors."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from exc

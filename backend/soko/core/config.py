from functools import lru_cache
import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


def _parse_models_value(value: str) -> dict[str, list[str]]:
    if not value or not value.strip():
        return {}
    try:
        parsed = json.loads(value)
    except ValueError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {
        str(provider).strip().lower(): _parse_list_value(models)
        for provider, models in parsed.items()
        if isinstance(models, (str, list))
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = Field(
        default=False,
        validation_alias=AliasChoices("EXPOSE_ERROR_DETAILS"),
    )
    cors_allow_origins_raw: str = Field(
        default="",
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS"),
    )

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    groq_api_key: str = ""
    ollama_url: str = "http://localhost:11434"

    ai_transaction_extract_provider: str = Field(
        default="",
        validation_alias=AliasChoices("AI_TRANSACTION_EXTRACT_PROVIDER", "LLM_PROVIDER"),
    )
    ai_transaction_extract_model: str = Field(
        default="",
        validation_alias=AliasChoices("AI_TRANSACTION_EXTRACT_MODEL", "LLM_MODEL"),
    )
    ai_transaction_extract_timeout_seconds: float = 8.0

    ai_timeout_seconds: float = 8.0
    ai_temperature: float = 0.1
    ai_max_tokens: int = 500
    enable_ai_overrides: bool = False
    ai_debug_store_raw: bool = False

    ai_allowed_providers_raw: str = Field(
        default="mock,openai,claude,groq,ollama",
        validation_alias=AliasChoices("AI_ALLOWED_PROVIDERS"),
    )
    ai_allowed_models_raw: str = Field(
        default="",
        validation_alias=AliasChoices("AI_ALLOWED_MODELS"),
    )

    default_currency: str = "KES"
    extract_confirmation_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    max_message_length: int = 2000

    @field_validator("ai_transaction_extract_provider", mode="before")
    @classmethod
    def _lower_provider(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("default_currency", mode="before")
    @classmethod
    def _upper_currency(cls, value):
        if isinstance(value, str):
            return value.strip().upper() or "KES"
        return value

    @property
    def cors_allow_origins(self) -> list[str]:
        return _parse_list_value(self.cors_allow_origins_raw)

    @property
    def ai_allowed_providers(self) -> list[str]:
        return [name.lower() for name in _parse_list_value(self.ai_allowed_providers_raw)]

    @property
    def ai_allowed_models(self) -> dict[str, list[str]]:
        return _parse_models_value(self.ai_allowed_models_raw)


@lru_cache

def get_settings() -> Settings:
    return Settings()

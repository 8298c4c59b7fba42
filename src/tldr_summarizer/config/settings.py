"""Runtime settings loaded from environment variables."""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

NonEmptyStr = Annotated[str, Field(min_length=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]
PositiveInt = Annotated[int, Field(gt=0)]


class Settings(BaseSettings):
    """Environment-driven application settings.

    Provider credentials may be empty here; the completion client reports
    them as authentication failures at call time.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    llm_provider: Literal["azure_openai", "openai"] = Field(
        default="azure_openai",
        validation_alias="LLM_PROVIDER",
    )
    azure_openai_endpoint: str = Field(default="", validation_alias="AZURE_OPENAI_ENDPOINT")
    azure_openai_api_key: str = Field(default="", validation_alias="AZURE_OPENAI_API_KEY")
    azure_openai_deployment: str = Field(
        default="",
        validation_alias="AZURE_OPENAI_DEPLOYMENT",
    )
    azure_openai_api_version: NonEmptyStr = Field(
        default="2024-02-01",
        validation_alias="AZURE_OPENAI_API_VERSION",
    )
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    openai_model: NonEmptyStr = Field(
        default="gpt-3.5-turbo",
        validation_alias="OPENAI_MODEL",
    )
    openai_base_url: NonEmptyStr = Field(
        default="https://api.openai.com",
        validation_alias="OPENAI_BASE_URL",
    )
    llm_max_output_tokens: PositiveInt = Field(
        default=100,
        validation_alias="LLM_MAX_OUTPUT_TOKENS",
    )
    llm_timeout_seconds: NonNegativeFloat = Field(
        default=60.0,
        validation_alias="LLM_TIMEOUT_SECONDS",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load and cache application settings."""

    return Settings()

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pagetranslate.pipeline.types import RetryBudget
from pagetranslate.pipeline.validate_output import ValidationRules


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAGETRANSLATE_",
        extra="ignore",
    )

    environment: str = "local"
    output_dir: Path = Path("data/html")
    prompts_root: Path = Path("pagetranslate/prompts")
    prompt_name: str = "page_translation"
    prompt_version: str = "v001"

    gemini_model: str = "gemini-2.5-flash"
    request_timeout_seconds: float = Field(default=300.0, gt=0)
    temperature: float | None = None
    max_output_tokens: int | None = Field(default=None, ge=1)

    page_attempts: int = Field(default=4, ge=1)
    transport_attempts: int = Field(default=6, ge=1)
    inter_page_delay_seconds: float = Field(default=2.0, ge=0)

    min_data_rows: int = Field(default=2, ge=1)
    min_original_chars: int = Field(default=80, ge=0)
    completion_marker: str = Field(default="<<<END_OF_PAGE>>>", min_length=1)

    log_level: str = "INFO"
    log_file: Path | None = None

    google_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "PAGETRANSLATE_GOOGLE_API_KEY",
            "GOOGLE_API_KEY",
            "GEMINI_API_KEY",
        ),
    )

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parents[2]

    @property
    def resolved_output_dir(self) -> Path:
        # Output lands relative to the working directory, not the install location.
        return self.output_dir.resolve()

    @property
    def resolved_prompts_root(self) -> Path:
        return self._resolve_path(self.prompts_root)

    @property
    def retry_budget(self) -> RetryBudget:
        return RetryBudget(
            page_attempts=self.page_attempts,
            transport_attempts=self.transport_attempts,
        )

    @property
    def validation_rules(self) -> ValidationRules:
        return ValidationRules(
            min_data_rows=self.min_data_rows,
            min_original_chars=self.min_original_chars,
            completion_marker=self.completion_marker,
        )

    def _resolve_path(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return (self.project_root / path).resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

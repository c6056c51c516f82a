"""
Settings management with pydantic-settings.

Everything that talks to the outside world (completion models, timeouts,
file locations) is configured here. Behavioural constants of the evaluation
pipeline live next to the code that uses them.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class EvalSettings(BaseSettings):
    """Runtime configuration for the evaluation harness."""
    model_config = SettingsConfigDict(
        env_prefix="NEGOTIATION_EVAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    openai_api_key: Optional[SecretStr] = Field(default=None, alias="OPENAI_API_KEY")
    request_timeout: int = 60

    # Persona extraction
    extraction_model: str = "gpt-4o"
    extraction_temperature: float = 0.3

    # Synthetic vendor role-play (higher temperature for variation)
    vendor_model: str = "gpt-4o"
    vendor_temperature: float = 0.7

    # Negotiation / safety classification of transcripts
    analysis_model: str = "gpt-4o"
    analysis_temperature: float = 0.1

    # Output
    eval_runs_path: str = "data/eval_runs.json"
    currency_symbol: str = "₹"
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> EvalSettings:
    """Get cached settings instance."""
    return EvalSettings()

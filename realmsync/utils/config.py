"""Configuration management using Pydantic for validation."""

from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class LLMConfig(BaseSettings):
    """LLM configuration.

    ``api_key`` and ``model`` fall back to the ``OPENROUTER_API_KEY`` and ``MODEL``
    environment variables so deployments don't need them in YAML.
    """

    model_config = SettingsConfigDict(
        env_prefix="REALMSYNC_LLM_", case_sensitive=False, populate_by_name=True, extra="ignore"
    )

    provider: Literal["openrouter"] = "openrouter"
    model: str = Field(default="", validation_alias="model")
    api_key: str = Field(default="", validation_alias="openrouter_api_key")
    base_url: str = OPENROUTER_BASE_URL
    temperature: float | None = None
    timeout: float = 120.0
    max_retries: int = 0
    app_url: str = "https://realmsync.app"
    app_title: str = "Realm Sync"

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float | None) -> float | None:
        """Validate temperature is between 0 and 1."""
        if v is not None and not 0 <= v <= 1:
            raise ValueError("Temperature must be between 0 and 1")
        return v


class ChunkingConfig(BaseSettings):
    """Chunking configuration (sizes in characters)."""

    max_chars: int = Field(default=12000, gt=0)
    overlap_chars: int = Field(default=800, ge=0)
    min_chunk_chars: int = Field(default=1000, ge=0)
    lookback_chars: int = Field(default=2000, gt=0)

    @model_validator(mode="after")
    def validate_overlap(self) -> "ChunkingConfig":
        """Overlap must leave room for forward progress."""
        if self.overlap_chars >= self.max_chars:
            raise ValueError("overlap_chars must be smaller than max_chars")
        return self


class CacheConfig(BaseSettings):
    """Extraction cache configuration."""

    backend: Literal["memory", "json"] = "memory"
    path: str = "data/cache/llm_cache.json"
    ttl_days: float = Field(default=7.0, gt=0)


class ExtractionConfig(BaseSettings):
    """Canon extraction configuration."""

    prompt_template: str = "config/extraction_prompts.yaml"
    prompt_version: str = "v1"
    check_prompt_version: str = "check-v1"
    evidence_strategy: Literal["regex", "rapidfuzz"] = "regex"
    max_anchor_words: int = Field(default=5, gt=0)
    min_anchor_word_length: int = Field(default=4, gt=0)
    fuzzy_min_score: float = Field(default=85.0, ge=0.0, le=100.0)


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    file: str | None = "logs/realmsync.log"
    rotation: str = "10 MB"
    retention: int = 3


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    # Configuration sections
    llm: LLMConfig = Field(default_factory=LLMConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts (overrides win).

        This is used to apply environment-derived overrides on top of YAML defaults.
        """
        merged: Dict[str, Any] = dict(base)
        for key, value in overrides.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env
        2) YAML file
        3) Model defaults

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML file is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"YAML config root must be a mapping/dict: {yaml_path}")

        # Nested sections don't see plain env vars (OPENROUTER_API_KEY, MODEL) through
        # the parent model, so LLM overrides are computed separately and merged under "llm".
        env_overrides = cls().model_dump(exclude_defaults=True)

        llm_env_overrides = LLMConfig().model_dump(exclude_defaults=True)
        if llm_env_overrides:
            yaml_llm = yaml_config.get("llm", {})
            env_overrides["llm"] = cls._deep_merge_dict(
                yaml_llm if isinstance(yaml_llm, dict) else {},
                llm_env_overrides,
            )

        merged = cls._deep_merge_dict(yaml_config, env_overrides)

        return cls(**merged)

    def validate_config(self) -> None:
        """Validate configuration settings.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.cache.backend == "json":
            Path(self.cache.path).parent.mkdir(parents=True, exist_ok=True)

        if self.logging.file:
            Path(self.logging.file).parent.mkdir(parents=True, exist_ok=True)

        if self.extraction.prompt_version == self.extraction.check_prompt_version:
            raise ValueError("Extraction and check prompt versions must differ")


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create global configuration instance.

    Returns:
        Global Config instance

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config() first.")
    return _config


def load_config(yaml_path: str | Path = "config/config.yaml") -> Config:
    """Load and validate configuration.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        Loaded and validated Config instance
    """
    global _config
    _config = Config.from_yaml(yaml_path)
    _config.validate_config()
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None

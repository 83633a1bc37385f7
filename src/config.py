import os
from typing import Optional

from aws_lambda_powertools import Logger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

import entities


def get_logger(service: Optional[str] = None, level: Optional[str] = None) -> Logger:
    kwargs = {
        "json_default": entities.json_default,
        "level": level or os.environ.get("LOG_LEVEL", "INFO"),
    }
    if service:
        kwargs["service"] = service
    return Logger(**kwargs)


logger = get_logger(service="config")


class Config(BaseSettings):
    model_config = SettingsConfigDict(frozen=True)

    github_token: str
    github_base_url: str = "https://api.github.com"
    github_api_version: str = "2022-11-28"

    enterprise_slug: str = ""

    max_items_per_request: int = 50

    retry_timeout_seconds: int = 300
    retry_initial_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    retry_backoff_multiplier: float = 2.0

    per_page: int = 100
    scim_page_size: int = 100
    request_timeout_seconds: float = 30.0

    log_level: str = "INFO"

    @field_validator("github_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("max_items_per_request", "per_page", "scim_page_size", "retry_timeout_seconds")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("request_timeout_seconds", "retry_initial_delay_seconds", "retry_max_delay_seconds")
    @classmethod
    def must_be_positive_duration(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v


_config: Optional[Config] = None


def get_config() -> Config:
    global _config  # noqa: PLW0603
    if _config is None:
        _config = Config()  # type: ignore # noqa: PGH003
        logger.debug("Configuration loaded", extra={"github_base_url": _config.github_base_url})
    return _config

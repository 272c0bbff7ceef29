from typing import Literal

from pydantic import BaseModel, Field


class OpenRouterConfig(BaseModel):
    base_url: str = "https://openrouter.ai/api/v1"
    timeout_sec: int = Field(default=600, ge=1)
    referer: str = "https://github.com/chat-kernel/chat-kernel"
    app_title: str = "Chat Kernel"


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay_sec: float = Field(default=0.5, ge=0)
    max_delay_sec: float = Field(default=8.0, ge=0)
    jitter_ratio: float = Field(default=0.2, ge=0, le=1)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class AppConfig(BaseModel):
    openrouter: OpenRouterConfig = Field(default_factory=OpenRouterConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

"""
Model provider configuration
"""

from pydantic import Field, SecretStr

from weft.config.base import WeftBaseConfig


class RetryConfig(WeftBaseConfig):
    """Retry with exponential backoff"""
    max_retries: int = Field(3, ge=0, le=10, description="Retries after the first attempt")
    base_delay: float = Field(1.0, ge=0.0, description="First backoff delay in seconds")
    max_delay: float = Field(30.0, ge=0.0, description="Backoff ceiling in seconds")


class CircuitBreakerConfig(WeftBaseConfig):
    """Circuit breaker"""
    failure_threshold: int = Field(5, ge=1, description="Consecutive failures before opening")
    reset_time: float = Field(60.0, ge=0.0, description="Seconds before a half-open retry")


class ModelConfig(WeftBaseConfig):
    """OpenAI-compatible endpoint"""
    api_key: SecretStr | None = Field(None, description="API key; falls back to OPENAI_API_KEY")
    base_url: str | None = Field(None, description="Endpoint override for compatible servers")
    model: str = Field("gpt-4o-mini", description="Default chat model")
    temperature: float | None = Field(None, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int | None = Field(None, ge=1, description="Completion token cap")
    timeout_s: float = Field(120.0, gt=0, description="Request timeout in seconds")
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)

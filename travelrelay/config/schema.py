"""Pydantic schemas for TravelRelay configuration validation."""
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from travelrelay.core.cache import DEFAULT_CHECK_PERIOD_S, DEFAULT_TTL_S, REFERENCE_DATA_TTL_S
from travelrelay.core.retry import RetryPolicy


class RetryPolicyConfig(BaseModel):
    """Retry policy configuration."""

    max_retries: int = Field(default=2, ge=0, description="Additional attempts after the first one")
    initial_delay_ms: int = Field(default=1000, ge=0, description="Backoff before the first retry in milliseconds")
    timeout_ms: int = Field(default=25000, gt=0, le=300000, description="Per-attempt deadline in milliseconds")
    max_delay_ms: Optional[int] = Field(default=None, gt=0, description="Cap on a single backoff delay")

    def to_policy(self) -> RetryPolicy:
        """Build the runtime RetryPolicy (milliseconds -> seconds)."""
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay_s=self.initial_delay_ms / 1000.0,
            timeout_s=self.timeout_ms / 1000.0,
            max_delay_s=self.max_delay_ms / 1000.0 if self.max_delay_ms is not None else None,
        )


class CacheConfig(BaseModel):
    """Cache configuration."""

    enabled: bool = Field(default=True, description="Enable caching")
    default_ttl_s: int = Field(default=DEFAULT_TTL_S, gt=0, description="TTL for general responses")
    reference_ttl_s: int = Field(default=REFERENCE_DATA_TTL_S, gt=0, description="TTL for near-static reference data")
    check_period_s: int = Field(default=DEFAULT_CHECK_PERIOD_S, ge=0, description="Seconds between expiry sweeps (0 disables)")
    max_entries: Optional[int] = Field(default=None, gt=0, description="Optional entry cap (unbounded if unset)")


class UpstreamConfig(BaseModel):
    """Upstream API configuration."""

    base_url: str = Field(default="https://test.api.amadeus.com", description="Base URL of the travel API")
    timeout_ms: int = Field(default=30000, gt=0, le=300000, description="Transport timeout in milliseconds")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {v!r}")
        return v.rstrip("/")


class TravelRelayConfig(BaseModel):
    """Root configuration model."""

    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig, description="Upstream API config")
    cache: CacheConfig = Field(default_factory=CacheConfig, description="Cache config")
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig, description="Default retry policy")
    operations: Dict[str, RetryPolicyConfig] = Field(
        default_factory=dict,
        description="Per-operation retry policy overrides. Format: {operation_name: {max_retries: 3, ...}}",
    )

    def policy_for(self, operation: str) -> RetryPolicy:
        """Retry policy for an operation, falling back to the default policy."""
        return self.operations.get(operation, self.retry).to_policy()

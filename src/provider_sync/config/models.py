"""Pydantic models for configuration schema."""

from typing import List
from pydantic import BaseModel, Field, model_validator

from provider_sync.models import Provider


class StoreConfig(BaseModel):
    """Local inventory store configuration."""

    path: str = Field(".provider-sync/inventory.json", min_length=1)
    lock_timeout: float = Field(30, gt=0, le=600, description="Seconds to wait for the inventory lock")


class RetryConfig(BaseModel):
    """Backoff for transient provider errors."""

    max_retries: int = Field(3, ge=0, le=10)
    base_delay: float = Field(1.0, gt=0)
    max_delay: float = Field(30.0, gt=0)
    jitter: bool = True

    @model_validator(mode="after")
    def validate_delays(self):
        """Validate that the delay ceiling is not below the base delay."""
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")
        return self


class SyncConfig(BaseModel):
    """Multi-provider sweep settings."""

    max_parallel_providers: int = Field(4, ge=1, le=64)


class ProvidersConfig(BaseModel):
    """Configured providers."""

    providers: List[Provider] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique(self):
        """Validate provider ids and names are unique."""
        seen_ids = set()
        seen_names = set()
        for provider in self.providers:
            if provider.id in seen_ids:
                raise ValueError(f"Duplicate provider id: {provider.id}")
            if provider.name in seen_names:
                raise ValueError(f"Duplicate provider name: {provider.name}")
            seen_ids.add(provider.id)
            seen_names.add(provider.name)
        return self

"""YAML configuration parser for provider-sync."""

from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from provider_sync.models import Provider
from provider_sync.utils.errors import ConfigurationError

from .models import ProvidersConfig, RetryConfig, StoreConfig, SyncConfig


class ConfigValidationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  - {location}: {msg}")

        return "\n".join(error_lines)


class Config:
    """Configuration manager for provider-sync."""

    SECTIONS = {
        "store": StoreConfig,
        "retry": RetryConfig,
        "sync": SyncConfig,
    }

    def __init__(self, config_path: str = "provider-sync.yaml"):
        """Initialize configuration manager.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        self.data: Dict = {}
        self.store = StoreConfig()
        self.retry = RetryConfig()
        self.sync = SyncConfig()
        self.providers: List[Provider] = []

    def load(self) -> "Config":
        """Load and validate configuration from YAML file.

        Returns:
            Self for method chaining

        Raises:
            ConfigValidationError: If configuration is invalid
            FileNotFoundError: If configuration file doesn't exist
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        return self.load_dict(self.data)

    def load_dict(self, data: Dict) -> "Config":
        """Validate and apply an already-parsed configuration mapping."""
        if not isinstance(data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")
        self.data = data

        validation_errors = self.validate()
        if validation_errors:
            raise ConfigValidationError(
                f"Configuration validation failed with {len(validation_errors)} error(s)",
                validation_errors,
            )

        self.store = StoreConfig(**self.data.get("store", {}))
        self.retry = RetryConfig(**self.data.get("retry", {}))
        self.sync = SyncConfig(**self.data.get("sync", {}))
        self.providers = ProvidersConfig(providers=self.data.get("providers", [])).providers

        return self

    def validate(self) -> List[Dict]:
        """Validate configuration against schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        for section, model in self.SECTIONS.items():
            if section not in self.data:
                continue
            if not isinstance(self.data[section], dict):
                errors.append({"loc": [section], "msg": f"'{section}' must be a mapping"})
                continue
            try:
                model(**self.data[section])
            except ValidationError as e:
                for error in e.errors():
                    errors.append({"loc": [section] + list(error["loc"]), "msg": error["msg"]})

        if "providers" not in self.data:
            errors.append({"loc": ["providers"], "msg": "Required field 'providers' is missing"})
        elif not isinstance(self.data["providers"], list) or len(self.data["providers"]) == 0:
            errors.append({"loc": ["providers"], "msg": "At least one provider must be defined"})
        else:
            item_errors = False
            for idx, provider_data in enumerate(self.data["providers"]):
                if not isinstance(provider_data, dict):
                    errors.append({"loc": ["providers", idx], "msg": "Provider must be a mapping"})
                    item_errors = True
                    continue
                try:
                    Provider(**provider_data)
                except ValidationError as e:
                    item_errors = True
                    for error in e.errors():
                        errors.append(
                            {"loc": ["providers", idx] + list(error["loc"]), "msg": error["msg"]}
                        )

            if not item_errors:
                try:
                    ProvidersConfig(providers=self.data["providers"])
                except ValidationError as e:
                    for error in e.errors():
                        errors.append({"loc": ["providers"], "msg": error["msg"]})

        return errors

    def get_provider(self, ref: Union[int, str]) -> Provider:
        """Resolve a provider by name, or by numeric id when no name matches.

        Raises:
            ConfigurationError: If no provider matches
        """
        for provider in self.providers:
            if provider.name == ref:
                return provider

        if isinstance(ref, int) or str(ref).isdecimal():
            for provider in self.providers:
                if provider.id == int(ref):
                    return provider

        available = ", ".join(f"{p.id}:{p.name}" for p in self.providers)
        raise ConfigurationError(f"Provider '{ref}' not found. Available providers: {available}")

    def active_providers(self) -> List[Provider]:
        return [p for p in self.providers if p.is_active()]

    def to_dict(self) -> Dict:
        """Convert configuration to dictionary."""
        return {
            "store": self.store.model_dump(),
            "retry": self.retry.model_dump(),
            "sync": self.sync.model_dump(),
            "providers": [provider.model_dump() for provider in self.providers],
        }

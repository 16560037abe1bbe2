"""Remote state listers for supported provider types."""

from typing import Optional

from provider_sync.models import Provider
from provider_sync.providers.base import RemoteStateLister
from provider_sync.providers.ec2 import EC2InstanceLister
from provider_sync.utils.errors import ConfigurationError, ErrorContext
from provider_sync.utils.retry import RetryStrategy

LISTER_TYPES = {
    "ec2": EC2InstanceLister,
}


def get_lister(provider: Provider, retry_strategy: Optional[RetryStrategy] = None) -> RemoteStateLister:
    """Build the remote state lister for a provider's backend type."""
    lister_class = LISTER_TYPES.get(provider.type)
    if lister_class is None:
        raise ConfigurationError(
            f"Unknown provider type: {provider.type}. Available: {', '.join(LISTER_TYPES)}",
            context=ErrorContext(provider_id=provider.id, provider_name=provider.name)
        )
    return lister_class(retry_strategy=retry_strategy)


__all__ = [
    "RemoteStateLister",
    "EC2InstanceLister",
    "LISTER_TYPES",
    "get_lister",
]

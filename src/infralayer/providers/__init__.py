"""Provider adapters."""

from infralayer.providers.base import (
    ProviderAdapter,
    ProviderResourceSchema,
    SchemaProviderAdapter,
)
from infralayer.providers.memory import InMemoryCloudProvider
from infralayer.providers.registry import (
    ProviderRegistry,
    create_provider,
    provider_registry,
    register_provider,
)

register_provider(
    "memory",
    InMemoryCloudProvider,
    description="Simulated AWS network and EKS objects held in memory",
)

__all__ = [
    "InMemoryCloudProvider",
    "ProviderAdapter",
    "ProviderRegistry",
    "ProviderResourceSchema",
    "SchemaProviderAdapter",
    "create_provider",
    "provider_registry",
    "register_provider",
]

"""Name -> factory registry for provider adapters selected by settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from infralayer.core.errors import ConfigurationError

AdapterFactory = Callable[..., Any]


@dataclass(frozen=True)
class AdapterSpec:
    """Metadata describing a registered provider adapter."""

    name: str
    factory: AdapterFactory
    description: str | None = None


class ProviderRegistry:
    """In-memory registry for provider adapters."""

    def __init__(self) -> None:
        self._adapters: Dict[str, AdapterSpec] = {}

    def register(
        self,
        name: str,
        factory: AdapterFactory,
        *,
        description: str | None = None,
    ) -> None:
        if not name:
            raise ValueError("Provider name is required")
        self._adapters[name] = AdapterSpec(name=name, factory=factory, description=description)

    def create(self, name: str, **kwargs: Any) -> Any:
        spec = self._adapters.get(name)
        if spec is None:
            known = ", ".join(sorted(self._adapters)) or "none"
            raise ConfigurationError(
                f"Provider '{name}' is not registered (available: {known})",
                {"provider": name},
            )
        return spec.factory(**kwargs)

    def names(self) -> List[str]:
        return sorted(self._adapters)


provider_registry = ProviderRegistry()


def register_provider(
    name: str, factory: AdapterFactory, *, description: str | None = None
) -> None:
    provider_registry.register(name, factory, description=description)


def create_provider(name: str, **kwargs: Any) -> Any:
    return provider_registry.create(name, **kwargs)

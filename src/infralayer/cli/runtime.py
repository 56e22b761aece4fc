"""Shared wiring for CLI commands."""

from __future__ import annotations

from infralayer.config import Settings, get_settings
from infralayer.providers import create_provider
from infralayer.reconciler import Reconciler
from infralayer.state import JsonStateStore


def resolve_settings(state_path: str | None = None, parallelism: int | None = None) -> Settings:
    """Settings with command-line overrides applied."""
    settings = get_settings()
    overrides: dict[str, object] = {}
    if state_path:
        overrides["state_path"] = state_path
    if parallelism is not None:
        overrides["max_parallelism"] = max(1, parallelism)
    return settings.model_copy(update=overrides) if overrides else settings


def make_reconciler(settings: Settings) -> Reconciler:
    """Reconciler using the configured provider and a JSON state file."""
    provider = create_provider(settings.provider)
    return Reconciler(provider, JsonStateStore(settings.state_path), settings)

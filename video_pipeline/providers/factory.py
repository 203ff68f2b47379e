"""
Provider Factory
================

Registry of adapter classes keyed by provider kind. Catalog keys resolve to
an adapter through their descriptor: ``runway`` uses the direct adapter, the
gateway-hosted models share the aggregator adapter.
"""

import logging
from typing import Optional, List, Dict, Type

import httpx

from ..core.config import ProvidersConfig
from ..core.exceptions import ValidationError
from ..utils.storage import ObjectStorage
from .base import BaseVideoProvider
from .catalog import PROVIDERS, ProviderKind, get_descriptor

logger = logging.getLogger(__name__)

# Registry of adapter classes
_ADAPTERS: Dict[ProviderKind, Type[BaseVideoProvider]] = {}


def register_provider(kind: ProviderKind):
    """Decorator to register an adapter class for a provider kind."""
    def decorator(cls: Type[BaseVideoProvider]):
        _ADAPTERS[kind] = cls
        return cls
    return decorator


def _ensure_loaded() -> None:
    # Adapter modules register themselves on import
    from . import piapi, runway  # noqa: F401


def get_adapter_class(kind: ProviderKind) -> Type[BaseVideoProvider]:
    """Adapter class registered for a provider kind."""
    _ensure_loaded()
    adapter_class = _ADAPTERS.get(kind)
    if adapter_class is None:
        raise ValueError(f"No adapter registered for {kind.value} providers")
    return adapter_class


def create_adapter(
    kind: ProviderKind,
    config: Optional[ProvidersConfig] = None,
    storage: Optional[ObjectStorage] = None,
    storage_prefix: str = "ai-videos",
    client: Optional[httpx.AsyncClient] = None,
) -> BaseVideoProvider:
    """
    Build an adapter for a provider kind from provider settings.

    Args:
        kind: Adapter family
        config: Provider settings (defaults when omitted)
        storage: Durable storage for re-hosting results
        storage_prefix: Key prefix for re-hosted media
        client: Shared HTTP client

    Returns:
        Configured adapter instance
    """
    config = config or ProvidersConfig()
    adapter_class = get_adapter_class(kind)

    if kind is ProviderKind.DIRECT:
        api_key = config.api_key_for("RUNWAY_API_KEY")
        base_url = config.runway_base_url
        extra = {"api_version": config.runway_api_version}
    else:
        api_key = config.api_key_for("PIAPI_API_KEY")
        base_url = config.piapi_base_url
        extra = {}

    return adapter_class(
        api_key=api_key,
        base_url=base_url,
        timeout=config.request_timeout,
        poll_interval=config.poll_interval,
        max_poll_attempts=config.max_poll_attempts,
        storage=storage,
        storage_prefix=storage_prefix,
        client=client,
        **extra,
    )


def get_provider(
    key: str,
    config: Optional[ProvidersConfig] = None,
    **kwargs,
) -> BaseVideoProvider:
    """
    Get an adapter for a catalog provider key.

    Args:
        key: Provider key (e.g., 'runway', 'kling', 'luma')
        config: Provider settings
        **kwargs: Passed to ``create_adapter``

    Raises:
        ValidationError: If the provider key is not in the catalog
    """
    descriptor = get_descriptor(key)
    if descriptor is None:
        raise ValidationError(
            f"Unknown provider: {key}",
            field="provider",
            value=key,
            constraint=f"one of {', '.join(sorted(PROVIDERS))}",
        )
    return create_adapter(descriptor.kind, config=config, **kwargs)


def list_providers() -> List[str]:
    """
    List all catalog provider keys that have a registered adapter.

    Returns:
        List of provider keys
    """
    _ensure_loaded()
    return [key for key, d in PROVIDERS.items() if d.kind in _ADAPTERS]

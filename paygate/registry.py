"""Adapter selection from settings."""

import logging
from functools import lru_cache
from typing import Callable, Dict, Optional, Tuple

from .adapters import (
    CommerceHubAdapter,
    DLocalAdapter,
    HpsAdapter,
    LitleAdapter,
    PaymentAdapter,
    SandboxAdapter,
    StripeAdapter,
)
from .config import Settings, get_settings
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Checked in this order when no provider is named.
_FACTORIES: Tuple[Tuple[str, Callable[[Settings], Optional[PaymentAdapter]]], ...] = (
    ("stripe", lambda s: _build(StripeAdapter, s.stripe_config())),
    ("litle", lambda s: _build(LitleAdapter, s.litle_config())),
    ("hps", lambda s: _build(HpsAdapter, s.hps_config())),
    ("dlocal", lambda s: _build(DLocalAdapter, s.dlocal_config())),
    ("commerce_hub", lambda s: _build(CommerceHubAdapter, s.commerce_hub_config())),
)

PROVIDERS: Dict[str, Callable[[Settings], Optional[PaymentAdapter]]] = dict(_FACTORIES)


def _build(adapter_class, config) -> Optional[PaymentAdapter]:
    return adapter_class(config) if config is not None else None


@lru_cache(maxsize=None)
def get_provider(name: Optional[str] = None) -> PaymentAdapter:
    """Build the adapter for ``name``, or for the first configured processor.

    Falls back to :class:`SandboxAdapter` when nothing is configured.

    Raises:
        ConfigurationError: If ``name`` is unknown or has no credentials
    """
    settings = get_settings()
    name = (name or settings.PAYGATE_PROVIDER or "").strip().lower() or None

    if name == "sandbox":
        return SandboxAdapter()

    if name is not None:
        factory = PROVIDERS.get(name)
        if factory is None:
            raise ConfigurationError(f"Unknown payment provider: {name}")
        adapter = factory(settings)
        if adapter is None:
            raise ConfigurationError(f"Payment provider {name} is not configured")
        logger.info("Using %s payment provider", adapter.display_name)
        return adapter

    for _, factory in _FACTORIES:
        adapter = factory(settings)
        if adapter is not None:
            logger.info("Using %s payment provider", adapter.display_name)
            return adapter

    logger.info("No payment provider configured; using the sandbox")
    return SandboxAdapter()

"""Adapters for integrating external payment processors."""

from .base import PaymentAdapter
from .commerce_hub import CommerceHubAdapter
from .dlocal import DLocalAdapter
from .hps import HpsAdapter
from .litle import LitleAdapter
from .sandbox import SandboxAdapter
from .stripe import StripeAdapter

__all__ = [
    "PaymentAdapter",
    "CommerceHubAdapter",
    "DLocalAdapter",
    "HpsAdapter",
    "LitleAdapter",
    "SandboxAdapter",
    "StripeAdapter",
]

"""
Upstream API Layer.

This package handles all communication with the relays and the resolution service.
"""

from .relay import DEFAULT_RELAYS, WRAPPED_RELAY, FetchKind, RelayFetcher, RelayTransform
from .resolver import Resolver

__all__ = [
    "DEFAULT_RELAYS",
    "WRAPPED_RELAY",
    "FetchKind",
    "RelayFetcher",
    "RelayTransform",
    "Resolver",
]

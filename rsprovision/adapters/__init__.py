"""Adapters — tool bindings for external integrations.

Public re-exports for convenient access.
"""

from rsprovision.adapters.base import Adapter, ExecutionContext
from rsprovision.adapters.mock import MockAdapter
from rsprovision.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "default_registry",
]

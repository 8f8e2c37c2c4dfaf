"""
Services
========
Service registry and the base class for dependency wrappers.
"""

from .base import BaseService, ServiceHealth
from .registry import ServiceProbe, ServiceRegistry, StateObserver

__all__ = [
    "BaseService",
    "ServiceHealth",
    "ServiceProbe",
    "ServiceRegistry",
    "StateObserver",
]

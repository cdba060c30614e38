"""
Persistence layer: store protocol and in-memory implementation.
"""

from .base import PersistenceStore
from .memory import InMemoryStore

__all__ = ['PersistenceStore', 'InMemoryStore']

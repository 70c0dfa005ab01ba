"""
Record store with lifecycle hooks: in-memory and PostgreSQL JSONB backends.
"""

from store.base import Record
from store.backend import RecordStore, RecordNotFound, StoreUnavailable, Neighbours
from store.memory import MemoryStore
from store.client import StoreClient

"""
In-memory entity store backing the provider routes.
"""

from mock_ota.store.record_store import Collection, RecordStore
from mock_ota.store.seed import MockDataGenerator, seed_store

__all__ = ["Collection", "MockDataGenerator", "RecordStore", "seed_store"]

"""Store access: explicitly constructed client, sessions, error translation."""

from empire.store.client import StoreClient, StoreConfig, StoreRole

__all__ = ["StoreClient", "StoreConfig", "StoreRole"]

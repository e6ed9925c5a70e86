"""Broker store backends."""

from ..config.settings import Settings
from .base import BrokerStore
from .memory import InMemoryBrokerStore
from .redis_store import RedisBrokerStore


def build_broker_store(settings: Settings) -> BrokerStore:
    if settings.broker_backend == "memory":
        return InMemoryBrokerStore(settings.queue_name)
    return RedisBrokerStore.from_settings(settings)


__all__ = [
    "BrokerStore",
    "InMemoryBrokerStore",
    "RedisBrokerStore",
    "build_broker_store",
]

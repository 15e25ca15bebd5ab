"""Testing utilities for CardSwap."""

from .factory import InstanceFactory, MasterCardFactory
from .faults import FaultyInstanceStore, FaultyOfferStore, FaultyStore, InterleavingProxy
from .fixtures import app_fixture, memory_app
from .test_client import TestClient

__all__ = [
    "InstanceFactory",
    "MasterCardFactory",
    "FaultyInstanceStore",
    "FaultyOfferStore",
    "FaultyStore",
    "InterleavingProxy",
    "app_fixture",
    "memory_app",
    "TestClient",
]

"""
azmachine/fake/__init__.py

In-memory backend for tests and dry runs.
"""

from azmachine.fake.backend import (
    FAKE_SUBSCRIPTION,
    FakeBackend,
    FakeClientFactory,
    FakeOperation,
    fake_clients,
)

__all__ = [
    "FAKE_SUBSCRIPTION",
    "FakeBackend",
    "FakeClientFactory",
    "FakeOperation",
    "fake_clients",
]

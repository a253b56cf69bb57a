"""
Root conftest.py: sys.path, env vars, shared fixtures.

Registry calls never leave the process: tests pass a FakeRegistry whose
lookup / fuzzy_lookup / fetch_record coroutines answer from in-memory dicts.
"""

import os
import sys

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from taxon_resolver.schemas import RegistryRecord  # noqa: E402
from taxon_resolver.services.patches import Patches  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep a developer's .env / shell from leaking into the tests."""
    for key in ("API_KEY", "DATABASE_URL", "PATCHES_DIR", "REGISTRY_BATCH_SIZE", "REGISTRY_FUZZY", "WORMS_REST_URL"):
        monkeypatch.delenv(key, raising=False)


class FakeRegistry:
    def __init__(self, by_name=None, by_id=None, fuzzy=None):
        self.by_name = by_name or {}
        self.by_id = by_id or {}
        self.fuzzy = fuzzy or {}
        self.batches = []
        self.fuzzy_batches = []
        self.fetched = []

    async def lookup(self, names):
        self.batches.append(list(names))
        return [list(self.by_name.get(n, [])) for n in names]

    async def fuzzy_lookup(self, names):
        self.fuzzy_batches.append(list(names))
        return [list(self.fuzzy.get(n, [])) for n in names]

    async def fetch_record(self, aphia_id):
        self.fetched.append(aphia_id)
        return self.by_id.get(aphia_id)

    def kwargs(self):
        return {"lookup": self.lookup, "fetch_record": self.fetch_record, "fuzzy_lookup": self.fuzzy_lookup}


@pytest.fixture
def make_record():
    """Factory fixture: a WoRMS-like candidate record."""
    def _make(registry_id, name, rank="species", status="accepted",
              accepted_id=None, accepted_name=None, family=None):
        genus = name.split()[0] if rank in ("species", "genus") else None
        return RegistryRecord(
            registry_id=registry_id,
            scientific_name=name,
            rank=rank,
            registry_status=status,
            accepted_name=accepted_name or name,
            accepted_registry_id=accepted_id or registry_id,
            kingdom="Animalia",
            phylum="Chordata",
            class_name="Teleostei",
            family=family,
            genus=genus,
        )
    return _make


@pytest.fixture
def fake_registry():
    """Factory fixture: FakeRegistry(by_name, by_id, fuzzy)."""
    return FakeRegistry


@pytest.fixture
def empty_patches():
    return Patches()

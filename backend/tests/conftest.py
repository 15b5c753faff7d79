"""
Shared fixtures: an in-memory shopping list repository and a scripted normalizer
"""
import itertools
import os
import sys

import pytest

# Add backend to sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.dirname(__file__))

from helpers import FakeShoppingListRepository, FakeNormalizer
from services.ingestion import IngestionEngine
from services.list_store import ListStore


@pytest.fixture
def repository():
    return FakeShoppingListRepository()


@pytest.fixture
def store(repository):
    return ListStore(repository)


@pytest.fixture
def normalizer():
    return FakeNormalizer(table={
        "Milk": ("Milk", "Dairy & Eggs"),
        "milk": ("Milk", "Dairy & Eggs"),
        "חלב": ("Milk", "Dairy & Eggs"),
        "Bread": ("Bread", "Bakery"),
    })


@pytest.fixture
def events():
    return []


@pytest.fixture
def engine(store, normalizer, events):
    async def notifier(event_type, list_id, payload):
        events.append((event_type, list_id, payload))

    counter = itertools.count(1)
    return IngestionEngine(store, normalizer, notifier=notifier,
                           id_factory=lambda: f"new-{next(counter)}")

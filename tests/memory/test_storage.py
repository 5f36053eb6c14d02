"""Tests for key-value storage backends."""

import pytest

from nexora.memory.storage import InMemoryStore, SQLiteStore


@pytest.fixture(params=["memory", "sqlite"])
def kv(request, tmp_path):
    """Run each test against both backends."""
    if request.param == "memory":
        return InMemoryStore()
    return SQLiteStore(tmp_path / "nested" / "test.db")


def test_get_missing(kv):
    assert kv.get("absent") is None


def test_set_and_get(kv):
    kv.set("a", '{"x": 1}')
    assert kv.get("a") == '{"x": 1}'


def test_set_replaces(kv):
    kv.set("a", "1")
    kv.set("a", "2")
    assert kv.get("a") == "2"
    assert kv.keys() == ["a"]


def test_remove(kv):
    kv.set("a", "1")
    kv.remove("a")
    kv.remove("never-set")
    assert kv.get("a") is None
    assert kv.keys() == []


def test_sqlite_survives_reopen(tmp_path):
    path = tmp_path / "test.db"
    SQLiteStore(path).set("nexora-pro-usage", '{"count": 2, "reset_time": 5}')

    reopened = SQLiteStore(path)

    assert reopened.get("nexora-pro-usage") == '{"count": 2, "reset_time": 5}'

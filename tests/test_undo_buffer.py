import pytest

from estoque.errors import NothingToRestoreError
from estoque.services.undo_buffer import RecentlyDeleted


def test_capacity_evicts_oldest_first():
    buffer = RecentlyDeleted(capacity=20)
    for i in range(21):
        buffer.push({"code": f"{i:04d}"})

    codes = [entry["code"] for entry in buffer.entries()]
    assert len(buffer) == 20
    assert codes[0] == "0001"
    assert codes[-1] == "0020"


def test_pop_is_lifo():
    buffer = RecentlyDeleted()
    buffer.push({"code": "0001"})
    buffer.push({"code": "0002"})
    assert buffer.pop()["code"] == "0002"
    assert buffer.pop()["code"] == "0001"


def test_empty_buffer_has_nothing_to_restore():
    buffer = RecentlyDeleted()
    with pytest.raises(NothingToRestoreError):
        buffer.pop()
    with pytest.raises(NothingToRestoreError):
        buffer.peek()


def test_push_stores_a_copy():
    buffer = RecentlyDeleted()
    record = {"code": "0001"}
    buffer.push(record)
    record["code"] = "9999"
    assert buffer.peek()["code"] == "0001"

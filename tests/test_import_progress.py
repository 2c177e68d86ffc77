import json

from estoque.services.import_progress import ImportProgress, RedisImportProgress


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl


def test_progress_starts_idle():
    state = ImportProgress().snapshot()
    assert state["status"] == "idle"
    assert state["total"] == state["atual"] == 0


def test_progress_lifecycle():
    progress = ImportProgress()
    progress.start(3)
    assert progress.snapshot()["status"] == "running"

    progress.advance("inserted")
    progress.advance("updated")
    progress.advance("skipped")
    state = progress.finish()

    assert state["status"] == "done"
    assert state["atual"] == 3
    assert (state["inserted"], state["updated"], state["skipped"]) == (1, 1, 1)
    assert state["finished_at"] is not None


def test_new_import_overwrites_terminal_state():
    progress = ImportProgress()
    progress.start(2)
    progress.advance("inserted")
    progress.fail("Import failed: boom")
    assert progress.snapshot()["status"] == "error"

    progress.start(4)
    state = progress.snapshot()
    assert state["status"] == "running"
    assert state["total"] == 4
    assert state["atual"] == 0
    assert state["message"] is None


def test_snapshot_is_a_copy():
    progress = ImportProgress()
    progress.start(1)
    snapshot = progress.snapshot()
    snapshot["atual"] = 99
    assert progress.snapshot()["atual"] == 0


def test_redis_progress_shares_state_through_the_store():
    client = FakeRedis()
    api_side = RedisImportProgress(client)
    worker_side = RedisImportProgress(client)

    api_side.start(2)
    worker_side.advance("inserted")
    worker_side.advance("inserted")
    worker_side.finish()

    state = api_side.snapshot()
    assert state["status"] == "done"
    assert state["atual"] == 2
    assert json.loads(client.data["import_progress"])["inserted"] == 2
    assert client.ttls["import_progress"] == 3600


def test_redis_progress_without_document_is_idle():
    assert RedisImportProgress(FakeRedis()).snapshot()["status"] == "idle"

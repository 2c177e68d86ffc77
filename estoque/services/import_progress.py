"""
Progress of the current spreadsheet import.

There is a single import slot per deployment: ``start`` overwrites whatever
the previous run left behind. Status moves ``idle -> running -> done|error``
and only a new ``start`` leaves a terminal status.

``ImportProgress`` keeps the state in process memory and is owned by the
application (``app.state.import_progress``). ``RedisImportProgress`` keeps
the same document in Redis so an import running in a Celery worker can be
followed from the API process.
"""
import json
from datetime import datetime
from typing import Any, Dict, Optional

IDLE = "idle"
RUNNING = "running"
DONE = "done"
ERROR = "error"

INSERTED = "inserted"
UPDATED = "updated"
SKIPPED = "skipped"


def _initial_state() -> Dict[str, Any]:
    return {
        "total": 0,
        "atual": 0,
        "status": IDLE,
        "inserted": 0,
        "updated": 0,
        "skipped": 0,
        "message": None,
        "started_at": None,
        "finished_at": None,
    }


class ImportProgress:
    """In-memory progress, unsynchronized: one import at a time is assumed."""

    def __init__(self):
        self._state = _initial_state()

    def _load(self) -> Dict[str, Any]:
        return self._state

    def _save(self, state: Dict[str, Any]) -> None:
        self._state = state

    def start(self, total: int, message: Optional[str] = None) -> Dict[str, Any]:
        state = _initial_state()
        state.update(
            total=total,
            status=RUNNING,
            message=message,
            started_at=datetime.utcnow().isoformat(),
        )
        self._save(state)
        return dict(state)

    def advance(self, outcome: str) -> None:
        """Count one processed row; called after the row's write completed."""
        state = self._load()
        state["atual"] += 1
        if outcome in (INSERTED, UPDATED, SKIPPED):
            state[outcome] += 1
        self._save(state)

    def finish(self) -> Dict[str, Any]:
        state = self._load()
        state.update(
            status=DONE,
            message=f"Import completed. {state['inserted']} inserted, "
                    f"{state['updated']} updated, {state['skipped']} skipped.",
            finished_at=datetime.utcnow().isoformat(),
        )
        self._save(state)
        return dict(state)

    def fail(self, message: str) -> Dict[str, Any]:
        state = self._load()
        state.update(status=ERROR, message=message, finished_at=datetime.utcnow().isoformat())
        self._save(state)
        return dict(state)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._load())


class RedisImportProgress(ImportProgress):
    """Progress document stored as JSON under one Redis key."""

    def __init__(self, redis_client, key: str = "import_progress", ttl: int = 3600):
        self.redis_client = redis_client
        self.key = key
        self.ttl = ttl

    def _load(self) -> Dict[str, Any]:
        existing = self.redis_client.get(self.key)
        if not existing:
            return _initial_state()
        return json.loads(existing)

    def _save(self, state: Dict[str, Any]) -> None:
        self.redis_client.setex(self.key, self.ttl, json.dumps(state))

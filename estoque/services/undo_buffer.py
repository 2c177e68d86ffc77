from collections import deque
from typing import Any, Dict, List

from estoque.errors import NothingToRestoreError

DEFAULT_CAPACITY = 20


class RecentlyDeleted:
    """
    Bounded ring of deleted product snapshots, most recent last.

    Pushing beyond capacity evicts the oldest entry. Restores are LIFO.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._entries: deque = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def push(self, record: Dict[str, Any]) -> None:
        self._entries.append(dict(record))

    def peek(self) -> Dict[str, Any]:
        if not self._entries:
            raise NothingToRestoreError()
        return dict(self._entries[-1])

    def pop(self) -> Dict[str, Any]:
        if not self._entries:
            raise NothingToRestoreError()
        return self._entries.pop()

    def entries(self) -> List[Dict[str, Any]]:
        return [dict(e) for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

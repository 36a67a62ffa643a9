"""In-memory tables shared by every InMemoryUnitOfWork created from one store.

Rows are stored as deep copies and handed out as deep copies, mimicking a
detached ORM session: mutating a loaded entity changes nothing until the
repository writes it back.

Writes are applied immediately and recorded in the unit of work's undo
journal; a rollback replays the journal backwards. Stock changes are
journalled as deltas so rolling one transaction back never clobbers a
concurrent one.
"""
from __future__ import annotations

import copy
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional


_MISSING = object()


class InMemoryStore:

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[Any, Any]] = defaultdict(dict)
        self._sequences: Dict[str, int] = defaultdict(int)

    def next_id(self, table: str) -> int:
        self._sequences[table] += 1
        return self._sequences[table]

    def get(self, table: str, key: Any) -> Any:
        row = self.tables[table].get(key)
        return copy.deepcopy(row) if row is not None else None

    def rows(self, table: str) -> List[Any]:
        return [copy.deepcopy(row) for row in self.tables[table].values()]

    def reset(self) -> None:
        self.tables.clear()
        self._sequences.clear()


class Journal:
    """Undo log for one unit of work."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self._undo: List[Callable[[], None]] = []

    def put(self, table: str, key: Any, row: Any) -> None:
        rows = self.store.tables[table]
        previous = rows.get(key, _MISSING)
        rows[key] = copy.deepcopy(row)

        def undo() -> None:
            if previous is _MISSING:
                rows.pop(key, None)
            else:
                rows[key] = previous

        self._undo.append(undo)

    def record(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def clear(self) -> None:
        self._undo.clear()

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()

    def __len__(self) -> int:
        return len(self._undo)


def find_one(rows: List[Any], predicate: Callable[[Any], bool]) -> Optional[Any]:
    for row in rows:
        if predicate(row):
            return row
    return None

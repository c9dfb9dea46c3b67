"""Persistence of user-chosen column widths.

A column with a ``width_storage_key`` remembers its width across sessions.
Stores only need ``load`` and ``save``; :class:`JsonFileWidthStore` keeps
every key in one small JSON document, which is what a browser's
``localStorage`` gives a client-side grid.
"""

import json
from pathlib import Path
from typing import Protocol

from reflex_grid_engine import log


class WidthStore(Protocol):
    def load(self, key: str) -> int | None: ...

    def save(self, key: str, width: int) -> None: ...


class InMemoryWidthStore:
    """Process-local store, handy for tests and server-side sessions."""

    def __init__(self, initial: dict[str, int] | None = None) -> None:
        self._widths: dict[str, int] = dict(initial or {})

    def load(self, key: str) -> int | None:
        return self._widths.get(key)

    def save(self, key: str, width: int) -> None:
        self._widths[key] = width

    def __contains__(self, key: object) -> bool:
        return key in self._widths


class JsonFileWidthStore:
    """Stores widths as ``{key: width}`` in a JSON file.

    Unreadable or corrupt files are treated as empty; a failed write is
    logged and otherwise ignored, so width persistence can never break
    the grid.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, int]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log.warn(f"[JsonFileWidthStore] ignoring unreadable {self.path}: {exc}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: int(v) for k, v in data.items() if isinstance(v, (int, float))}

    def load(self, key: str) -> int | None:
        return self._read().get(key)

    def save(self, key: str, width: int) -> None:
        data = self._read()
        data[key] = width
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as exc:
            log.warn(f"[JsonFileWidthStore] could not write {self.path}: {exc}")

"""
JSON file holding the TrackedState of every managed API key between runs.

The file contains tokens; treat it like a secret. It is rewritten atomically
(temp file + rename) so an interrupted run never leaves it half-written.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from .model import TrackedState

log = logging.getLogger(__name__)

STATE_VERSION = 1


class StateStoreError(Exception):
    """Raised when the state file cannot be read."""


class StateStore:
    """Resource name -> TrackedState, backed by a JSON file."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._items: Dict[str, TrackedState] = {}

    def load(self) -> "StateStore":
        if not self.path.exists():
            self._items = {}
            return self
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"State file {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("api_keys", {}), dict):
            raise StateStoreError(f"State file {self.path} must contain an 'api_keys' object")
        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise StateStoreError(f"Unsupported state version {version!r} in {self.path}")
        self._items = {
            name: TrackedState.from_dict(item)
            for name, item in (data.get("api_keys") or {}).items()
        }
        log.debug("Loaded %d tracked api key(s) from %s", len(self._items), self.path)
        return self

    def save(self) -> None:
        payload = {
            "version": STATE_VERSION,
            "api_keys": {name: st.to_dict() for name, st in sorted(self._items.items())},
        }
        parent = self.path.parent if str(self.path.parent) else Path(".")
        parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".seqsync-state-", dir=str(parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, sort_keys=True)
                fh.write("\n")
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, name: str) -> Optional[TrackedState]:
        return self._items.get(name)

    def put(self, name: str, state: TrackedState) -> None:
        self._items[name] = state

    def remove(self, name: str) -> None:
        self._items.pop(name, None)

    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._items))

    def items(self) -> Iterator[Tuple[str, TrackedState]]:
        return iter(sorted(self._items.items()))

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def __len__(self) -> int:
        return len(self._items)

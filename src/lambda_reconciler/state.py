"""Persisted deployment state.

The state of one deployment instance is a flat JSON document, read once at
the start of a run and written once at the end. There is no locking:
deployments of the same instance must be serialized by the caller.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from .exceptions import StateError
from .models import PersistedState

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".lambda-reconciler"
DEFAULT_INSTANCE = "default"


class StateStore(Protocol):
    def load(self) -> PersistedState | None: ...

    def save(self, state: PersistedState) -> None: ...

    def clear(self) -> None: ...


class FileStateStore:
    """Stores state at ``<state_dir>/<instance>.json``."""

    def __init__(
        self,
        state_dir: str | Path = DEFAULT_STATE_DIR,
        instance: str = DEFAULT_INSTANCE,
    ) -> None:
        self.path = Path(state_dir) / f"{instance}.json"

    def load(self) -> PersistedState | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StateError(str(self.path), f"cannot be read: {e}") from e
        if not data:
            return None
        try:
            return PersistedState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StateError(str(self.path), f"is malformed: {e}") from e

    def save(self, state: PersistedState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(json.dumps(state.to_dict(), indent=2, sort_keys=True) + "\n")
            # Atomic replace: a crash never leaves a half-written document
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StateError(str(self.path), f"cannot be written: {e}") from e
        logger.debug("Saved state for %s to %s", state.name, self.path)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StateError(str(self.path), f"cannot be removed: {e}") from e

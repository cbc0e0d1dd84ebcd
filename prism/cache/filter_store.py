"""
Filter Store — persistence for the false-positive set and the seen index.

The scanner only reads a snapshot and writes back a proposed update; where the
snapshot lives is up to the store. An in-memory store serves tests and single
processes, a JSON file store survives restarts.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from prism.config import settings
from prism.models.filter_models import FilterSnapshot

logger = logging.getLogger("prism.filters.store")


class FilterStore(ABC):
    """Interface: load and save a FilterSnapshot."""

    @abstractmethod
    def load(self) -> FilterSnapshot:
        """Return a private copy of the stored snapshot."""

    @abstractmethod
    def save(self, snapshot: FilterSnapshot) -> None:
        """Replace the stored snapshot."""


class InMemoryFilterStore(FilterStore):
    """Keeps the snapshot in process memory."""

    def __init__(self, snapshot: FilterSnapshot | None = None) -> None:
        self._snapshot = snapshot or FilterSnapshot()
        self._lock = threading.Lock()

    def load(self) -> FilterSnapshot:
        with self._lock:
            return self._snapshot.model_copy(deep=True)

    def save(self, snapshot: FilterSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot.model_copy(deep=True)


class JsonFileFilterStore(FilterStore):
    """Stores the snapshot as a single JSON document on disk."""

    def __init__(self, path: str | None = None) -> None:
        self.path = Path(path or settings.filter_store_path)
        self._lock = threading.Lock()

    def load(self) -> FilterSnapshot:
        with self._lock:
            if not self.path.exists():
                return FilterSnapshot()
            try:
                with open(self.path, encoding="utf-8") as f:
                    return FilterSnapshot.model_validate(json.load(f))
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.error(f"Unreadable filter store {self.path}, starting empty: {e}")
                return FilterSnapshot()

    def save(self, snapshot: FilterSnapshot) -> None:
        with self._lock:
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    f.write(snapshot.model_dump_json())
                tmp_path.replace(self.path)
            except OSError as e:
                logger.error(f"Failed to write filter store {self.path}: {e}")

"""Keyed storage for the current analysis of each product.

Every store keeps exactly one result per product id. ``upsert`` replaces
whatever was stored before (last write wins); it never appends history.
"""

import json
import os
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from .models import AnalysisResult


class AnalysisStore(ABC):
    @abstractmethod
    def get(self, product_id: str) -> AnalysisResult | None:
        """Return the current result for ``product_id``, if any."""

    @abstractmethod
    def upsert(self, product_id: str, result: AnalysisResult) -> None:
        """Store ``result`` as the current result for ``product_id``."""

    @abstractmethod
    def all(self) -> list[AnalysisResult]:
        """Return every current result."""


class InMemoryAnalysisStore(AnalysisStore):
    def __init__(self):
        self._results: dict[str, AnalysisResult] = {}
        self._lock = threading.Lock()

    def get(self, product_id: str) -> AnalysisResult | None:
        with self._lock:
            return self._results.get(product_id)

    def upsert(self, product_id: str, result: AnalysisResult) -> None:
        with self._lock:
            self._results[product_id] = result

    def all(self) -> list[AnalysisResult]:
        with self._lock:
            return list(self._results.values())


def safe_key(product_id: str) -> str:
    """Filesystem-safe file stem for a product id."""
    return re.sub(r"[^A-Za-z0-9_.-]", "_", product_id)


class JsonAnalysisStore(AnalysisStore):
    """One JSON file per product under ``directory``.

    Writes go to a temporary file that is then renamed over the target, so a
    reader sees either the previous result or the new one.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, product_id: str) -> Path:
        return self.directory / f"{safe_key(product_id)}.json"

    def get(self, product_id: str) -> AnalysisResult | None:
        path = self._path(product_id)
        if not path.exists():
            return None
        return AnalysisResult.model_validate_json(path.read_text(encoding="utf-8"))

    def upsert(self, product_id: str, result: AnalysisResult) -> None:
        path = self._path(product_id)
        tmp_path = path.with_suffix(".json.tmp")
        data = result.model_dump(mode="json")
        with self._lock:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)

    def all(self) -> list[AnalysisResult]:
        return [
            AnalysisResult.model_validate_json(path.read_text(encoding="utf-8"))
            for path in sorted(self.directory.glob("*.json"))
        ]

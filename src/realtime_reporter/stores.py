"""Collaborator stores: step snapshots and scenario status.

The reporter only delegates to these; real deployments plug in their own
implementations (a database, a cache behind the UI server ...).
"""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .core import ScenarioStatus, Snapshot
from .io import atomic_write_json, read_json

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def add(self, step_index: int, snapshot: Snapshot) -> None:
        ...


class ScenarioStatusStore(Protocol):
    def set_status(self, test_id: Any, status: ScenarioStatus) -> None:
        ...


class InMemorySnapshotStore:
    """Keeps the latest snapshot (markup included) per step index."""

    def __init__(self) -> None:
        self.snapshots: Dict[int, Snapshot] = {}

    def add(self, step_index: int, snapshot: Snapshot) -> None:
        self.snapshots[step_index] = snapshot

    def get(self, step_index: int) -> Optional[Snapshot]:
        return self.snapshots.get(step_index)

    def clear(self) -> None:
        self.snapshots.clear()


class InMemoryScenarioStatusStore:
    def __init__(self) -> None:
        self.statuses: Dict[Any, ScenarioStatus] = {}

    def set_status(self, test_id: Any, status: ScenarioStatus) -> None:
        self.statuses[test_id] = status


class JsonScenarioStatusStore:
    """Scenario statuses kept in one JSON document keyed by test id.

    Parameters
    ----------
    path : str or Path
        JSON file; rewritten atomically on every update.

    Examples
    --------
    >>> store = JsonScenarioStatusStore("reports/status.json")
    >>> store.set_status("t1", ScenarioStatus(status="passed", duration=1.2))
    >>> store.load()["t1"]["status"]
    'passed'
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        return read_json(self.path, default={})

    def set_status(self, test_id: Any, status: ScenarioStatus) -> None:
        data = self.load()
        data[str(test_id)] = status.model_dump(mode="json", by_alias=True, exclude_none=True)
        atomic_write_json(self.path, data)
        logger.debug("stored status %s for %s", status.status, test_id)

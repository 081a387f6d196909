"""JSON file storage for journeys and the message log.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM; reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      journeys/
        {journey_id}.json     ← JourneySnapshot (session state + saved_at + is_active)
      logs/
        {journey_id}.json     ← append-only list of log entries
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sanctuary.models import JourneySnapshot

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def _check_id(journey_id: str) -> str:
    if not _SAFE_ID.match(journey_id):
        raise ValueError(f"Invalid journey id: {journey_id!r}")
    return journey_id


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


class JourneyStore:
    """Save and load journey snapshots."""

    def __init__(self, base_path: Path) -> None:
        self._root = base_path / "journeys"
        self._root.mkdir(parents=True, exist_ok=True)

    def _file(self, journey_id: str) -> Path:
        return self._root / f"{_check_id(journey_id)}.json"

    def save(self, snapshot: JourneySnapshot) -> None:
        snapshot.saved_at = datetime.now(timezone.utc).isoformat()
        self._file(snapshot.journey_id).write_text(
            snapshot.model_dump_json(indent=2), encoding="utf-8"
        )

    def load(self, journey_id: str) -> JourneySnapshot | None:
        path = self._file(journey_id)
        if not path.exists():
            return None
        return JourneySnapshot.model_validate_json(path.read_text(encoding="utf-8"))

    def list_journeys(self) -> list[JourneySnapshot]:
        """All journeys, most recently saved first."""
        snaps = [
            JourneySnapshot.model_validate_json(p.read_text(encoding="utf-8"))
            for p in self._root.glob("*.json")
        ]
        snaps.sort(key=lambda s: s.saved_at, reverse=True)
        return snaps

    def latest_active(self) -> JourneySnapshot | None:
        for snap in self.list_journeys():
            if snap.is_active:
                return snap
        return None

    def end_journey(self, journey_id: str) -> bool:
        """Mark a journey inactive. Returns False if it does not exist."""
        snap = self.load(journey_id)
        if snap is None:
            return False
        snap.is_active = False
        self.save(snap)
        return True

    def delete(self, journey_id: str) -> bool:
        path = self._file(journey_id)
        if not path.exists():
            return False
        path.unlink()
        return True


class MessageLog:
    """Append-only audit log of utterances and coordinator decisions."""

    def __init__(self, base_path: Path) -> None:
        self._root = base_path / "logs"
        self._root.mkdir(parents=True, exist_ok=True)

    def _file(self, journey_id: str) -> Path:
        return self._root / f"{_check_id(journey_id)}.json"

    def get_entries(self, journey_id: str) -> list[dict]:
        path = self._file(journey_id)
        if not path.exists():
            return []
        return _read_json(path)

    def append(self, journey_id: str, entry: dict) -> None:
        entries = self.get_entries(journey_id)
        entries.append({"ts": datetime.now(timezone.utc).isoformat(), **entry})
        _write_json(self._file(journey_id), entries)

    def delete(self, journey_id: str) -> bool:
        path = self._file(journey_id)
        if not path.exists():
            return False
        path.unlink()
        return True

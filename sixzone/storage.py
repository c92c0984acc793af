"""JSON file persistence for zones, sources and scenarios."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, List, Union

from .amp_client.exceptions import AmpValidationError
from .amp_client.models import Scenario, Source, ZoneState
from .const import SCENARIOS_FILE, SOURCES_FILE, STORAGE_VERSION, ZONES_FILE

_LOGGER = logging.getLogger(__name__)


class JsonStorage:
    """Stores each collection as ``{"version": 1, "data": [...]}``.

    A bare JSON list is accepted on load as well. Writes go to a temp file
    that replaces the target, so a crash never leaves a half written file.
    """

    def __init__(self, data_dir: Union[str, Path]) -> None:
        self.data_dir = Path(data_dir)

    def _load(self, filename: str) -> List[dict[str, Any]]:
        path = self.data_dir / filename
        if not path.exists():
            _LOGGER.debug("No %s yet, starting empty", path)
            return []
        try:
            with path.open("r", encoding="utf-8") as handle:
                content = json.load(handle)
        except (OSError, ValueError) as err:
            _LOGGER.warning("Could not read %s, starting empty: %s", path, err)
            return []

        if isinstance(content, dict):
            version = content.get("version")
            if version != STORAGE_VERSION:
                _LOGGER.warning("%s has storage version %s, expected %s", path, version, STORAGE_VERSION)
            content = content.get("data", [])
        if not isinstance(content, list):
            _LOGGER.warning("%s does not hold a list, starting empty", path)
            return []
        # Legacy files may contain nulls for unused slots
        return [item for item in content if isinstance(item, dict)]

    def _save(self, filename: str, items: Iterable[dict[str, Any]]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.data_dir / filename
        payload = {"version": STORAGE_VERSION, "data": list(items)}
        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{filename}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=4)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        _LOGGER.debug("Saved %s", path)

    def _parse(self, items: List[dict[str, Any]], factory, kind: str) -> list:
        parsed = []
        for item in items:
            try:
                parsed.append(factory(item))
            except AmpValidationError as err:
                _LOGGER.warning("Skipping stored %s %s: %s", kind, item.get("id"), err)
        return parsed

    def load_zones(self) -> List[ZoneState]:
        return self._parse(self._load(ZONES_FILE), ZoneState.from_dict, "zone")

    def save_zones(self, zones: Iterable[ZoneState]) -> None:
        self._save(ZONES_FILE, (z.as_dict() for z in zones))

    def load_sources(self) -> List[Source]:
        return self._parse(self._load(SOURCES_FILE), Source.from_dict, "source")

    def save_sources(self, sources: Iterable[Source]) -> None:
        self._save(SOURCES_FILE, (s.as_dict() for s in sources))

    def load_scenarios(self) -> List[Scenario]:
        return self._parse(self._load(SCENARIOS_FILE), Scenario.from_dict, "scenario")

    def save_scenarios(self, scenarios: Iterable[Scenario]) -> None:
        self._save(SCENARIOS_FILE, (s.as_dict() for s in scenarios))

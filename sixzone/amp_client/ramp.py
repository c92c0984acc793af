"""Timed, incremental attribute transitions (volume fades and the like).

A zone has at most one active ramp, which may move several attributes at
once. One shared periodic tick advances every ramp together; the tick is
armed when the first ramp starts and disarmed when the last one finishes.

The per-tick computation is the pure function ``advance()``: it takes
the ramps and a snapshot of the current zone values and returns the
writes to issue plus the ramps still running. ``RampScheduler`` only
owns the timer and routes the writes into the zone store, so ramp writes
and client writes share one channel and a ramp always continues from
whatever value the device last reported.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .exceptions import AmpValidationError
from .models import Attribute, coerce_int
from .store import ZoneStateStore

_LOGGER = logging.getLogger(__name__)

DEFAULT_RAMP_INTERVAL = 0.25  # seconds


class Direction(str, Enum):
    """Direction of travel of a ramp."""

    UP = "up"
    DOWN = "down"

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        if isinstance(value, Direction):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as err:
            raise AmpValidationError(f"Unknown ramp direction: {value}") from err


@dataclass(frozen=True)
class RampEntry:
    """Where one attribute is heading and by how much per tick."""

    target: int
    step: int


@dataclass(frozen=True)
class RampWrite:
    """One write produced by a tick."""

    zone_id: int
    attribute: Attribute
    value: int


@dataclass
class Ramp:
    """The active transition of one zone."""

    zone_id: int
    entries: Dict[Attribute, RampEntry] = field(default_factory=dict)

    @classmethod
    def create(
        cls, zone_id: int, attribute: Attribute, direction: Direction, step: int = 1
    ) -> "Ramp":
        """Ramp one attribute to its maximum (up) or minimum (down)."""
        if direction is Direction.UP:
            entry = RampEntry(target=attribute.maximum, step=abs(step))
        else:
            entry = RampEntry(target=attribute.minimum, step=-abs(step))
        return cls(zone_id=zone_id, entries={attribute: entry})

    @property
    def finished(self) -> bool:
        return not self.entries

    def merge(self, other: "Ramp") -> None:
        """Take over the other ramp's entries, replacing ours per attribute."""
        if other.zone_id != self.zone_id:
            return
        self.entries.update(other.entries)

    def stop(self, attributes: Optional[List[Attribute]] = None) -> None:
        """Drop entries without a final write; all of them if none named."""
        if attributes is None:
            self.entries.clear()
            return
        for attribute in attributes:
            self.entries.pop(attribute, None)


def _step_entry(current: int, entry: RampEntry) -> Tuple[Optional[int], bool]:
    """Next value for one entry and whether the entry is still active."""
    if not entry.step:
        return None, False

    sign = 1 if entry.step > 0 else -1
    if (entry.target - current) * sign <= 0:
        # Already at or past the target: finish without writing
        return None, False

    following = current + entry.step
    if (entry.target - following) * sign <= 0:
        return entry.target, False
    return following, True


def advance(
    ramps: Mapping[int, Ramp],
    snapshot: Mapping[int, Mapping[Attribute, Any]],
) -> Tuple[List[RampWrite], Dict[int, Ramp]]:
    """Compute one tick.

    Args:
        ramps: Active ramps keyed by zone id (not modified)
        snapshot: Current attribute values keyed by zone id

    Returns:
        The writes to issue, in zone and entry order, and the ramps that
        still have active entries afterwards
    """
    writes: List[RampWrite] = []
    remaining: Dict[int, Ramp] = {}

    for zone_id, ramp in ramps.items():
        current = snapshot.get(zone_id)
        if current is None:
            _LOGGER.warning("Dropping ramp for unknown zone %d", zone_id)
            continue

        entries: Dict[Attribute, RampEntry] = {}
        for attribute, entry in ramp.entries.items():
            value, active = _step_entry(current[attribute], entry)
            if value is not None:
                writes.append(RampWrite(zone_id, attribute, value))
            if active:
                entries[attribute] = entry

        if entries:
            remaining[zone_id] = Ramp(zone_id=zone_id, entries=entries)

    return writes, remaining


class RampScheduler:
    """Owns the active ramps and the shared tick timer."""

    def __init__(
        self,
        store: ZoneStateStore,
        interval: float = DEFAULT_RAMP_INTERVAL,
    ) -> None:
        self._store = store
        self.interval = interval
        self._ramps: Dict[int, Ramp] = {}
        self._tick_task: Optional[asyncio.Task] = None

    @property
    def ramps(self) -> Dict[int, Ramp]:
        """Copy of the active ramps keyed by zone id."""
        return dict(self._ramps)

    @property
    def is_armed(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def start_ramp(
        self, zone_id: Any, attribute: Any, direction: Any, step: Any = 1
    ) -> Ramp:
        """Start (or merge into) the ramp of a zone.

        Raises:
            AmpNotFoundError: Unknown zone id
            AmpValidationError: Attribute not rampable, bad direction or step
        """
        zone = self._store.get(zone_id)
        attribute = Attribute.parse(attribute)
        if not attribute.rampable:
            raise AmpValidationError(f"Attribute {attribute.value} cannot be ramped")
        direction = Direction.parse(direction)
        step = coerce_int(step, "ramp step")
        if step < 1:
            raise AmpValidationError(f"Ramp step must be at least 1, got {step}")

        ramp = Ramp.create(zone.zone_id, attribute, direction, step)
        existing = self._ramps.get(zone.zone_id)
        if existing is not None:
            existing.merge(ramp)
            ramp = existing
        else:
            self._ramps[zone.zone_id] = ramp

        _LOGGER.info(
            "Ramp zone=%d attribute=%s direction=%s step=%d active_ramps=%d",
            zone.zone_id, attribute.value, direction.value, step, len(self._ramps)
        )
        self._arm()
        return ramp

    def stop_ramp(self, zone_id: Any, attribute: Optional[Any] = None) -> None:
        """Stop one attribute of a zone's ramp, or the whole ramp."""
        zone = self._store.get(zone_id)
        ramp = self._ramps.get(zone.zone_id)
        if ramp is None:
            return

        attributes = None if attribute is None else [Attribute.parse(attribute)]
        ramp.stop(attributes)
        if ramp.finished:
            del self._ramps[zone.zone_id]
            _LOGGER.info("Ramp zone=%d stopped", zone.zone_id)
        if not self._ramps:
            self._disarm()

    def tick(self) -> List[RampWrite]:
        """Advance every ramp once and push the writes through the store."""
        writes, self._ramps = advance(self._ramps, self._store.snapshot())
        for write in writes:
            self._store.request_write(write.zone_id, write.attribute, write.value)
        return writes

    def _arm(self) -> None:
        if self.is_armed or not self._ramps:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _LOGGER.debug("No running loop, ramp tick must be driven manually")
            return
        self._tick_task = loop.create_task(self._tick_loop())
        _LOGGER.debug("Ramp tick armed interval=%.3fs", self.interval)

    def _disarm(self) -> None:
        task, self._tick_task = self._tick_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            _LOGGER.debug("Ramp tick disarmed")

    async def _tick_loop(self) -> None:
        while self._ramps:
            await asyncio.sleep(self.interval)
            try:
                self.tick()
            except Exception:
                _LOGGER.exception("Ramp tick failed, dropping all ramps")
                self._ramps.clear()
        self._tick_task = None
        _LOGGER.debug("Ramp tick disarmed, no active ramps")

    async def close(self) -> None:
        """Drop every ramp and stop the timer."""
        self._ramps.clear()
        task, self._tick_task = self._tick_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

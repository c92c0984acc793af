"""The sixzone bridge: one owned object holding all amplifier state.

``AmpBridge`` is built at startup from the persistence provider, wires the
zone store, device session and ramp scheduler together, and is what the
route layer talks to. Every zone change, whether from a client, a ramp or
a scenario, ends up in ``ZoneStateStore.request_write`` and from there on
the session's single write channel.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

import voluptuous as vol

from .amp_client.commands import AmpCommands
from .amp_client.exceptions import (
    AmpError,
    AmpNotFoundError,
    AmpTimeoutError,
    AmpValidationError,
)
from .amp_client.models import (
    LOCAL_ZONE_FIELDS,
    SOURCE_IDS,
    Attribute,
    Scenario,
    Source,
    ZoneState,
    coerce_int,
    default_sources,
    default_zones,
    find_by_id,
    lowest_unused_id,
    validate_zone_id,
)
from .amp_client.ramp import DEFAULT_RAMP_INTERVAL, Ramp, RampScheduler
from .amp_client.session import DeviceSession
from .amp_client.store import ZoneStateStore
from .const import DEFAULT_POLL_TIMEOUT, DEFAULT_SAVE_DELAY
from .storage import JsonStorage

_LOGGER = logging.getLogger(__name__)


def _attribute_value(attribute: Attribute):
    """Voluptuous validator clamping/coercing one managed attribute."""

    def validate(value: Any) -> Any:
        try:
            return attribute.coerce(value)
        except AmpValidationError as err:
            raise vol.Invalid(str(err)) from err

    return validate


# null leaves a text field unchanged
_TEXT = vol.Any(None, vol.Coerce(str))

ZONE_DELTA_SCHEMA = vol.Schema(
    {
        vol.Required("id"): vol.Coerce(int),
        vol.Optional("name"): _TEXT,
        vol.Optional("description"): _TEXT,
        **{vol.Optional(attr.value): _attribute_value(attr) for attr in Attribute},
    }
)

SOURCE_DELTA_SCHEMA = vol.Schema(
    {
        vol.Required("id"): vol.All(vol.Coerce(int), vol.In(SOURCE_IDS)),
        vol.Optional("enabled"): vol.Boolean(),
        vol.Optional("name"): _TEXT,
        vol.Optional("description"): _TEXT,
    }
)

SCENARIO_DELTA_SCHEMA = vol.Schema(
    {
        vol.Optional("id"): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional("name"): _TEXT,
        vol.Optional("description"): _TEXT,
        vol.Optional("zones"): [ZONE_DELTA_SCHEMA],
    }
)


def _validate(schema: vol.Schema, data: Any, kind: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise AmpValidationError(f"Invalid {kind}: expected an object, got {data!r}")
    try:
        return schema(data)
    except vol.Invalid as err:
        raise AmpValidationError(f"Invalid {kind}: {err}") from err


def _as_list(deltas: Any, kind: str) -> List[Any]:
    if isinstance(deltas, dict):
        return [deltas]
    if not isinstance(deltas, (list, tuple)):
        raise AmpValidationError(f"Invalid {kind} update: expected a list")
    return list(deltas)


class AmpBridge:
    """Zones, sources, scenarios and ramps of one amplifier stack."""

    def __init__(
        self,
        storage: JsonStorage,
        connection=None,
        amp_count: int = 1,
        ramp_interval: float = DEFAULT_RAMP_INTERVAL,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
        save_delay: float = DEFAULT_SAVE_DELAY,
        exit_on_error: bool = False,
        on_fatal: Optional[Callable[[AmpError], None]] = None,
    ) -> None:
        """Initialize the bridge from persisted state.

        Args:
            storage: Persistence provider
            connection: Amplifier transport; None runs without a device
            amp_count: Number of amps on the link (1-3)
            ramp_interval: Seconds between ramp ticks
            poll_timeout: Seconds start() waits for the first poll, 0 = forever
            save_delay: Seconds zone changes are collected before writing them
            exit_on_error: Stop the session on the first device error
            on_fatal: Called when exit_on_error stops the session
        """
        self._storage = storage
        self.amp_count = amp_count
        self.poll_timeout = poll_timeout
        self.save_delay = save_delay

        zones = {z.zone_id: z for z in default_zones(amp_count)}
        for zone in storage.load_zones():
            zones[zone.zone_id] = zone
        self.store = ZoneStateStore(zones[z] for z in sorted(zones))

        sources = {s.id: s for s in default_sources()}
        for source in storage.load_sources():
            sources[source.id] = source
        self._sources: List[Source] = [sources[s] for s in SOURCE_IDS]

        self._scenarios: List[Scenario] = []
        for scenario in storage.load_scenarios():
            if scenario.id < 1 or any(s.id == scenario.id for s in self._scenarios):
                _LOGGER.warning("Skipping stored scenario with bad id %s", scenario.id)
                continue
            self._scenarios.append(scenario)

        self.session: Optional[DeviceSession] = None
        if connection is not None:
            self.session = DeviceSession(
                connection,
                self.store,
                amp_count=amp_count,
                exit_on_error=exit_on_error,
                on_fatal=on_fatal,
            )
        self.ramps = RampScheduler(self.store, interval=ramp_interval)

        self._zones_dirty = False
        self._batch_depth = 0
        self._zone_save_handle: Optional[asyncio.TimerHandle] = None
        self._zone_save_future: Optional[asyncio.Future] = None
        self.store.add_listener(self._zone_changed)

        _LOGGER.info(
            "sixzone: init zones=%d sources=%d scenarios=%d device=%s",
            len(self.store.zone_ids), len(self._sources), len(self._scenarios),
            connection is not None,
        )

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start(self) -> None:
        """Open the device session and wait for the first poll."""
        if self.session is None:
            _LOGGER.warning("sixzone: no device configured, running offline")
            return

        startup_start = time.monotonic()
        await self.session.start()
        try:
            await self.session.wait_for_poll(self.poll_timeout or None)
        except AmpTimeoutError as err:
            _LOGGER.warning("sixzone: startup stage=poll ok=false err=%s", err)
        else:
            _LOGGER.info(
                "sixzone: startup stage=poll duration_ms=%d zones=%d",
                int((time.monotonic() - startup_start) * 1000), len(self.store.zone_ids)
            )

    async def stop(self) -> None:
        """Cancel ramps, close the session and write state to disk."""
        await self.ramps.close()
        if self.session is not None:
            await self.session.stop()
        await self._flush_zones_now()
        _LOGGER.info("sixzone: stopped")

    def status(self) -> Dict[str, Any]:
        session = self.session
        return {
            "connected": bool(session and session.is_connected),
            "last_error": str(session.last_error) if session and session.last_error else None,
            "pending_writes": session.scheduler.queue_size if session else 0,
            "active_ramps": len(self.ramps.ramps),
        }

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def _zone_changed(self, zone: ZoneState) -> None:
        self._zones_dirty = True
        if not self._batch_depth:
            self._schedule_zone_save()

    def _schedule_zone_save(self) -> None:
        """Debounce zone saves; ramps and polls change zones in bursts."""
        if not self._zones_dirty:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._save_zones()
            return
        if self._zone_save_handle is None:
            self._zone_save_handle = loop.call_later(self.save_delay, self._flush_zones)

    def _flush_zones(self) -> None:
        self._zone_save_handle = None
        if not self._zones_dirty:
            return
        if self._zone_save_future is not None and not self._zone_save_future.done():
            # One write at a time, try again once it lands
            self._schedule_zone_save()
            return
        self._zones_dirty = False
        snapshot = [copy.copy(zone) for zone in self.store.zones()]
        loop = asyncio.get_running_loop()
        self._zone_save_future = loop.run_in_executor(None, self._write_zones, snapshot)

    def _write_zones(self, zones: List[ZoneState]) -> None:
        try:
            self._storage.save_zones(zones)
        except OSError as err:
            _LOGGER.error("Failed to save zones: %s", err)

    async def _flush_zones_now(self) -> None:
        """Cancel the pending timer and write zones before returning."""
        if self._zone_save_handle is not None:
            self._zone_save_handle.cancel()
            self._zone_save_handle = None
        if self._zone_save_future is not None:
            await self._zone_save_future
            self._zone_save_future = None
        self._save_zones()

    def _save_zones(self) -> None:
        if not self._zones_dirty:
            return
        self._zones_dirty = False
        self._write_zones(self.store.zones())

    def _save_sources(self) -> None:
        try:
            self._storage.save_sources(self._sources)
        except OSError as err:
            _LOGGER.error("Failed to save sources: %s", err)

    def _save_scenarios(self) -> None:
        try:
            self._storage.save_scenarios(self._scenarios)
        except OSError as err:
            _LOGGER.error("Failed to save scenarios: %s", err)

    def _send(self, line: str) -> None:
        if self.session is None:
            _LOGGER.warning("No device attached, %s not sent", line)
            return
        self.session.send(line)

    # ========================================================================
    # ZONES
    # ========================================================================

    def list_zones(self) -> List[ZoneState]:
        return self.store.zones()

    def get_zone(self, zone_id: Any) -> ZoneState:
        return self.store.get(zone_id)

    def get_zone_attribute(self, zone_id: Any, attribute: Any) -> Any:
        if str(attribute) in LOCAL_ZONE_FIELDS:
            return getattr(self.store.get(zone_id), str(attribute))
        return self.store.get(zone_id, attribute)

    def update_zones(self, deltas: Iterable[Dict[str, Any]]) -> List[ZoneState]:
        """Apply partial zone updates in order.

        The whole batch is validated first; nothing is written if any delta
        is invalid. Attribute writes are issued in the order given, and
        values equal to the current state are skipped.

        Raises:
            AmpNotFoundError: A delta names an unknown zone
            AmpValidationError: A delta has an unknown key or bad value
        """
        checked = []
        for raw in _as_list(deltas, "zone"):
            delta = _validate(ZONE_DELTA_SCHEMA, raw, "zone delta")
            zone = self.store.get(delta["id"])
            checked.append((zone, [key for key in raw if key != "id"], delta))

        touched: List[ZoneState] = []
        self._batch_depth += 1
        try:
            for zone, keys, delta in checked:
                for key in keys:
                    if key in LOCAL_ZONE_FIELDS:
                        self.store.set_local(zone.zone_id, **{key: delta[key]})
                    else:
                        self.store.request_write(zone.zone_id, key, delta[key])
                if zone not in touched:
                    touched.append(zone)
        finally:
            self._batch_depth -= 1
        if not self._batch_depth:
            self._schedule_zone_save()
        return touched

    def set_zone_attribute(self, zone_id: Any, attribute: Any, value: Any) -> Any:
        """Write one attribute and return its resulting value."""
        key = str(attribute)
        if key not in LOCAL_ZONE_FIELDS:
            key = Attribute.parse(attribute).value
        self.update_zones([{"id": zone_id, key: value}])
        return self.get_zone_attribute(zone_id, key)

    def adjust_zone(self, zone_id: Any, attribute: Any, amount: Any = 1) -> int:
        """Add ``amount`` (may be negative) to a numeric attribute."""
        attribute = Attribute.parse(attribute)
        if attribute.is_bool:
            raise AmpValidationError(f"Attribute {attribute.value} is not numeric")
        current = self.store.get(zone_id, attribute)
        target = current + coerce_int(amount, "amount")
        return self.set_zone_attribute(zone_id, attribute, target)

    def next_source(self, zone_id: Any) -> int:
        """Select the next enabled source, wrapping after 6."""
        return self._cycle_source(zone_id, 1)

    def previous_source(self, zone_id: Any) -> int:
        """Select the previous enabled source, wrapping before 1."""
        return self._cycle_source(zone_id, -1)

    def _cycle_source(self, zone_id: Any, direction: int) -> int:
        current = self.store.get(zone_id, Attribute.SOURCE)
        count = len(SOURCE_IDS)
        for offset in range(1, count + 1):
            candidate = (current - 1 + direction * offset) % count + 1
            if self.get_source(candidate).enabled:
                return self.set_zone_attribute(zone_id, Attribute.SOURCE, candidate)
        _LOGGER.warning("No enabled source to switch zone %s to", zone_id)
        return current

    def refresh(self) -> None:
        """Ask the device for the state of every zone again."""
        if self.session is None:
            raise AmpValidationError("No device attached")
        self.session.poll()

    # ========================================================================
    # RAMPS
    # ========================================================================

    def start_ramp(self, zone_id: Any, attribute: Any, direction: Any, step: Any = 1) -> Ramp:
        return self.ramps.start_ramp(zone_id, attribute, direction, step)

    def stop_ramp(self, zone_id: Any, attribute: Optional[Any] = None) -> None:
        self.ramps.stop_ramp(zone_id, attribute)

    # ========================================================================
    # SOURCES
    # ========================================================================

    def list_sources(self) -> List[Source]:
        return list(self._sources)

    def get_source(self, source_id: Any) -> Source:
        try:
            number = int(source_id)
        except (TypeError, ValueError) as err:
            raise AmpNotFoundError(f"Source not found: {source_id}") from err
        return find_by_id(self._sources, number, "Source")

    def update_sources(self, deltas: Iterable[Dict[str, Any]]) -> List[Source]:
        """Apply partial source updates; names are mirrored to the device.

        Raises:
            AmpNotFoundError: A delta names an unknown source
            AmpValidationError: A delta has an unknown key or bad value
        """
        checked = []
        for raw in _as_list(deltas, "source"):
            if isinstance(raw, dict) and raw.get("id") is not None:
                self.get_source(raw["id"])
            delta = _validate(SOURCE_DELTA_SCHEMA, raw, "source delta")
            checked.append((self.get_source(delta["id"]), delta))

        touched: List[Source] = []
        for source, delta in checked:
            if delta.get("name") is not None:
                sanitized = AmpCommands.sanitize_name(delta["name"])
                name = sanitized.rstrip()
                if name != source.name:
                    self._send(AmpCommands.set_source_name(source.id, sanitized))
                    source.name = name
            if "enabled" in delta:
                source.enabled = delta["enabled"]
            if delta.get("description") is not None:
                source.description = delta["description"]
            if source not in touched:
                touched.append(source)

        self._save_sources()
        return touched

    # ========================================================================
    # SCENARIOS
    # ========================================================================

    def list_scenarios(self) -> List[Scenario]:
        return list(self._scenarios)

    def get_scenario(self, scenario_id: Any) -> Scenario:
        try:
            number = int(scenario_id)
        except (TypeError, ValueError) as err:
            raise AmpNotFoundError(f"Scenario not found: {scenario_id}") from err
        return find_by_id(self._scenarios, number, "Scenario")

    def update_scenarios(self, deltas: Iterable[Dict[str, Any]]) -> List[Scenario]:
        """Create or update scenarios.

        A delta without ``id`` creates a scenario with the lowest unused id;
        a delta whose id is unknown creates it with that id; otherwise the
        given fields replace the stored ones.

        Raises:
            AmpNotFoundError: A stored zone delta names an unknown zone
            AmpValidationError: A delta has an unknown key or bad value
        """
        checked = []
        for raw in _as_list(deltas, "scenario"):
            delta = _validate(SCENARIO_DELTA_SCHEMA, raw, "scenario delta")
            for zone_delta in delta.get("zones", []):
                validate_zone_id(zone_delta["id"])
                self.store.get(zone_delta["id"])
            checked.append((raw, delta))

        touched: List[Scenario] = []
        for raw, delta in checked:
            scenario_id = delta.get("id")
            if scenario_id is None:
                scenario_id = lowest_unused_id(s.id for s in self._scenarios)
            try:
                scenario = self.get_scenario(scenario_id)
            except AmpNotFoundError:
                scenario = Scenario(id=scenario_id)
                self._scenarios.append(scenario)
                self._scenarios.sort(key=lambda s: s.id)
                _LOGGER.info("Created scenario %d", scenario_id)

            if delta.get("name") is not None:
                scenario.name = delta["name"]
            if delta.get("description") is not None:
                scenario.description = delta["description"]
            if "zones" in raw:
                # Keep the caller's key order, it is the write order on engage
                scenario.zones = [
                    {key: zone[key] for key in raw_zone if zone.get(key) is not None}
                    for raw_zone, zone in zip(raw["zones"], delta["zones"])
                ]
            if scenario not in touched:
                touched.append(scenario)

        self._save_scenarios()
        return touched

    def delete_scenario(self, scenario_id: Any) -> None:
        scenario = self.get_scenario(scenario_id)
        self._scenarios.remove(scenario)
        self._save_scenarios()
        _LOGGER.info("Deleted scenario %d", scenario.id)

    def engage_scenario(self, scenario_id: Any) -> List[ZoneState]:
        """Replay a scenario's zone deltas through the normal write path."""
        scenario = self.get_scenario(scenario_id)
        _LOGGER.info("Engaging scenario %d (%s)", scenario.id, scenario.name)
        return self.update_zones(scenario.zones)

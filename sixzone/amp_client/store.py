"""In-memory zone state kept consistent with the amplifier."""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .commands import AmpCommands, Telemetry
from .exceptions import AmpNotFoundError
from .models import ZONE_IDS, Attribute, ZoneState, validate_zone_id

_LOGGER = logging.getLogger(__name__)

SendFn = Callable[[str], Any]
Listener = Callable[[ZoneState], None]


class ZoneStateStore:
    """Authoritative snapshot of every zone.

    Two kinds of mutation reach the store:
    - telemetry decoded from the device, applied as-is (after range checks)
    - write intents from clients or ramps, which are validated, clamped and
      handed to ``send`` as protocol lines when they change something

    The store never holds an out-of-range number or a non-boolean flag.
    """

    def __init__(
        self,
        zones: Iterable[ZoneState] = (),
        send: Optional[SendFn] = None,
    ) -> None:
        self._zones: Dict[int, ZoneState] = {}
        for zone in zones:
            self._zones[zone.zone_id] = zone
        self._send = send
        self._listeners: List[Listener] = []

    def attach(self, send: SendFn) -> None:
        """Set the function that transmits write lines."""
        self._send = send

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(zone)`` after every change; returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, zone: ZoneState) -> None:
        for listener in list(self._listeners):
            listener(zone)

    @property
    def zone_ids(self) -> List[int]:
        return sorted(self._zones)

    def zones(self) -> List[ZoneState]:
        return [self._zones[z] for z in self.zone_ids]

    def _zone(self, zone_id: Any) -> ZoneState:
        number = validate_zone_id(zone_id)
        zone = self._zones.get(number)
        if zone is None:
            raise AmpNotFoundError(f"Zone not found: {zone_id}")
        return zone

    def get(self, zone_id: Any, attribute: Optional[Any] = None) -> Any:
        """Return a zone, or one attribute of it.

        Raises:
            AmpNotFoundError: Unknown zone id
            AmpValidationError: Unknown attribute
        """
        zone = self._zone(zone_id)
        if attribute is None:
            return zone
        return zone.get(Attribute.parse(attribute))

    def snapshot(self) -> Dict[int, Dict[Attribute, Any]]:
        """Copy of every managed attribute, keyed by zone id."""
        return {
            zone_id: {attr: zone.get(attr) for attr in Attribute}
            for zone_id, zone in self._zones.items()
        }

    def apply_telemetry(self, frame: Telemetry) -> Optional[ZoneState]:
        """Merge a device report into the store.

        The device is the range authority, but values outside the known
        ranges are clamped so the store invariant holds.
        """
        if frame.zone_id not in ZONE_IDS:
            _LOGGER.warning("Ignoring telemetry for invalid zone %d", frame.zone_id)
            return None

        zone = self._zones.get(frame.zone_id)
        if zone is None:
            _LOGGER.info("Zone %d reported by device, adding it", frame.zone_id)
            zone = self._zones[frame.zone_id] = ZoneState(zone_id=frame.zone_id)

        for attribute, raw in frame.values.items():
            value = attribute.coerce(raw)
            if value != raw:
                _LOGGER.warning(
                    "Zone %d reported %s=%s outside range, clamped to %s",
                    frame.zone_id, attribute.value, raw, value
                )
            setattr(zone, attribute.value, value)

        _LOGGER.debug("Zone %d telemetry applied: %s", frame.zone_id, zone)
        self._notify(zone)
        return zone

    def request_write(self, zone_id: Any, attribute: Any, raw_value: Any) -> bool:
        """Validate, clamp and apply a write intent.

        Returns:
            True if the value changed and a device write was issued, False if
            the clamped value already matched the stored one

        Raises:
            AmpNotFoundError: Unknown zone id
            AmpValidationError: Unknown attribute or uninterpretable value
        """
        zone = self._zone(zone_id)
        attribute = Attribute.parse(attribute)
        value = attribute.coerce(raw_value)

        if zone.get(attribute) == value:
            _LOGGER.debug(
                "Zone %d %s already %s, no write", zone.zone_id, attribute.value, value
            )
            return False

        line = AmpCommands.set_attribute(zone.zone_id, attribute, value)
        setattr(zone, attribute.value, value)
        if self._send is not None:
            self._send(line)
        else:
            _LOGGER.warning("No device attached, %s applied locally only", line)

        self._notify(zone)
        return True

    def set_local(self, zone_id: Any, **fields: Any) -> ZoneState:
        """Update fields the device does not manage (name, description)."""
        zone = self._zone(zone_id)
        changed = False
        for key in ("name", "description"):
            if key in fields and fields[key] is not None:
                text = str(fields[key])
                if getattr(zone, key) != text:
                    setattr(zone, key, text)
                    changed = True
        if changed:
            self._notify(zone)
        return zone

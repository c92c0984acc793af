"""Data models for the six-zone amplifier."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List

from .exceptions import AmpNotFoundError, AmpValidationError

MAX_AMPS = 3
ZONES_PER_AMP = 6
SOURCE_COUNT = 6
SOURCE_NAME_LENGTH = 8

# Zone id = amp * 10 + output, e.g. 11..16, 21..26, 31..36
ZONE_IDS = tuple(
    amp * 10 + zone
    for amp in range(1, MAX_AMPS + 1)
    for zone in range(1, ZONES_PER_AMP + 1)
)
SOURCE_IDS = tuple(range(1, SOURCE_COUNT + 1))


@dataclass(frozen=True)
class AttributeSpec:
    """Wire op code and value range of a managed attribute."""

    op_code: str
    minimum: int = 0
    maximum: int = 1
    is_bool: bool = False


class Attribute(str, Enum):
    """The nine zone attributes the amplifier manages."""

    PA = "pa"
    POWER = "power"
    MUTE = "mute"
    DND = "dnd"
    VOLUME = "volume"
    TREBLE = "treble"
    BASS = "bass"
    BALANCE = "balance"
    SOURCE = "source"

    @classmethod
    def parse(cls, name: Any) -> "Attribute":
        """Look up an attribute by name, rejecting anything unmanaged."""
        if isinstance(name, Attribute):
            return name
        try:
            return cls(str(name).lower())
        except ValueError as err:
            raise AmpValidationError(f"Unknown attribute: {name}") from err

    @property
    def spec(self) -> AttributeSpec:
        return ATTRIBUTE_SPECS[self]

    @property
    def op_code(self) -> str:
        return self.spec.op_code

    @property
    def minimum(self) -> int:
        return self.spec.minimum

    @property
    def maximum(self) -> int:
        return self.spec.maximum

    @property
    def is_bool(self) -> bool:
        return self.spec.is_bool

    @property
    def rampable(self) -> bool:
        return self in RAMPABLE_ATTRIBUTES

    def coerce(self, value: Any) -> Any:
        """Coerce a raw value to this attribute's type, clamping numbers.

        Out-of-range numbers are clamped, never rejected. Values that cannot
        be interpreted at all raise AmpValidationError.
        """
        if self.is_bool:
            return coerce_bool(value)

        number = coerce_int(value, self.value)
        return max(self.minimum, min(self.maximum, number))


ATTRIBUTE_SPECS: Dict[Attribute, AttributeSpec] = {
    Attribute.PA: AttributeSpec("PA", is_bool=True),
    Attribute.POWER: AttributeSpec("PR", is_bool=True),
    Attribute.MUTE: AttributeSpec("MU", is_bool=True),
    Attribute.DND: AttributeSpec("DT", is_bool=True),
    Attribute.VOLUME: AttributeSpec("VO", 0, 38),
    Attribute.TREBLE: AttributeSpec("TR", 0, 14),
    Attribute.BASS: AttributeSpec("BS", 0, 14),
    Attribute.BALANCE: AttributeSpec("BL", 0, 20),
    Attribute.SOURCE: AttributeSpec("CH", 1, 6),
}

ATTRIBUTES_BY_OP_CODE = {spec.op_code: attr for attr, spec in ATTRIBUTE_SPECS.items()}

RAMPABLE_ATTRIBUTES = (
    Attribute.VOLUME,
    Attribute.TREBLE,
    Attribute.BASS,
    Attribute.BALANCE,
)

# Zone fields that are stored locally but never sent to the device
LOCAL_ZONE_FIELDS = ("name", "description")


def coerce_bool(value: Any) -> bool:
    """Coerce API/JSON input to a strict boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "01", "true", "on", "yes"):
            return True
        if text in ("0", "00", "false", "off", "no", ""):
            return False
    raise AmpValidationError(f"Not a boolean value: {value!r}")


def coerce_int(value: Any, what: str = "value") -> int:
    """Coerce API/JSON input to an integer."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise AmpValidationError(f"Not a finite {what}: {value!r}")
        return int(round(value))
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            pass
    raise AmpValidationError(f"Not an integer {what}: {value!r}")


def zone_ids_for(amp_count: int) -> tuple[int, ...]:
    """Zone ids present on the first ``amp_count`` amplifiers."""
    return tuple(z for z in ZONE_IDS if z // 10 <= amp_count)


def validate_zone_id(zone_id: Any) -> int:
    """Return a zone id as int, raising AmpNotFoundError if outside the valid set."""
    try:
        number = coerce_int(zone_id, "zone id")
    except AmpValidationError as err:
        raise AmpNotFoundError(f"Zone not found: {zone_id}") from err
    if number not in ZONE_IDS:
        raise AmpNotFoundError(f"Zone not found: {zone_id}")
    return number


@dataclass
class ZoneState:
    """Represents the current state of a zone."""

    zone_id: int
    name: str = ""
    description: str = ""
    pa: bool = False
    power: bool = False
    mute: bool = False
    dnd: bool = False
    volume: int = 20  # 0-38
    treble: int = 7  # 0-14, 7 = flat
    bass: int = 7  # 0-14, 7 = flat
    balance: int = 10  # 0-20, 10 = centre
    source: int = 1  # 1-6

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"Zone {self.zone_id}"

    @property
    def amp(self) -> int:
        return self.zone_id // 10

    def get(self, attribute: Attribute) -> Any:
        return getattr(self, attribute.value)

    def set(self, attribute: Attribute, value: Any) -> None:
        setattr(self, attribute.value, attribute.coerce(value))

    def as_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.zone_id}
        for f in fields(self):
            if f.name != "zone_id":
                result[f.name] = getattr(self, f.name)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ZoneState":
        """Build a zone from persisted data, clamping every managed attribute."""
        zone = cls(
            zone_id=validate_zone_id(data.get("id", data.get("zone_id"))),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
        )
        for attribute in Attribute:
            if data.get(attribute.value) is not None:
                zone.set(attribute, data[attribute.value])
        return zone

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ZoneState(zone={self.zone_id}, power={self.power}, "
            f"source={self.source}, volume={self.volume}, muted={self.mute})"
        )


@dataclass
class Source:
    """One of the six amplifier inputs."""

    id: int
    enabled: bool = True
    name: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"Source {self.id}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "enabled": self.enabled,
            "name": self.name,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Source":
        source_id = coerce_int(data.get("id"), "source id")
        if source_id not in SOURCE_IDS:
            raise AmpNotFoundError(f"Source not found: {source_id}")
        return cls(
            id=source_id,
            enabled=coerce_bool(data.get("enabled", True)),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
        )


@dataclass
class Scenario:
    """A named preset of per-zone attribute deltas."""

    id: int
    name: str = ""
    description: str = ""
    zones: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "zones": [dict(z) for z in self.zones],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scenario":
        return cls(
            id=coerce_int(data.get("id"), "scenario id"),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            zones=[dict(z) for z in data.get("zones") or []],
        )


def default_zones(amp_count: int) -> List[ZoneState]:
    return [ZoneState(zone_id=z) for z in zone_ids_for(amp_count)]


def default_sources() -> List[Source]:
    return [Source(id=s) for s in SOURCE_IDS]


def lowest_unused_id(used: Any) -> int:
    """Smallest positive integer not in ``used``."""
    taken = set(used)
    candidate = 1
    while candidate in taken:
        candidate += 1
    return candidate


def find_by_id(items: List[Any], item_id: int, kind: str) -> Any:
    for item in items:
        if item.id == item_id:
            return item
    raise AmpNotFoundError(f"{kind} not found: {item_id}")

"""Six-zone amplifier protocol command definitions.

Command Format:
- All commands are ASCII lines terminated by a newline
- Zone ids: 11-16, 21-26, 31-36 (amp number x 10 + zone number)
- Values: two digits, zero-padded; booleans are 00/01

Outbound:
- ?A0          query every zone of amp A (1-3)
- <ZZopVV      set attribute op of zone ZZ to VV
- S<NNNNNNNN   set the 8 character name of source S

Inbound:
- >ZZppppvvvvvvvvvv  telemetry, eleven two-digit groups for zone ZZ
- Command Error.     the last command was rejected
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .exceptions import AmpValidationError
from .models import (
    MAX_AMPS,
    SOURCE_IDS,
    SOURCE_NAME_LENGTH,
    Attribute,
    validate_zone_id,
)

TELEMETRY_RE = re.compile(">" + r"(\d{2})" * 11)
COMMAND_ERROR = "command error."
ACKNOWLEDGEMENT = "done."

# Telemetry group order after the zone id; the 11th group is reserved
TELEMETRY_ATTRIBUTES = (
    Attribute.PA,
    Attribute.POWER,
    Attribute.MUTE,
    Attribute.DND,
    Attribute.VOLUME,
    Attribute.TREBLE,
    Attribute.BASS,
    Attribute.BALANCE,
    Attribute.SOURCE,
)


@dataclass(frozen=True)
class Telemetry:
    """Full state of one zone as reported by the device.

    Values are raw: numbers are not clamped here.
    """

    zone_id: int
    values: Dict[Attribute, Any]


@dataclass(frozen=True)
class CommandErrorFrame:
    """Device rejected the last command."""

    line: str


@dataclass(frozen=True)
class Acknowledgement:
    """Device accepted a command that has an explicit reply."""

    line: str


Frame = Union[Telemetry, CommandErrorFrame, Acknowledgement]


class AmpCommands:
    """Six-zone amplifier protocol commands."""

    # ========================================================================
    # QUERY COMMANDS
    # ========================================================================

    @staticmethod
    def query(amp: int) -> str:
        """Query all zones of an amplifier.

        Command: ?A0
        - A = amp number (1-3)

        The device answers with one telemetry line per zone.
        """
        if not 1 <= amp <= MAX_AMPS:
            raise AmpValidationError(f"Amp must be 1-{MAX_AMPS}, got {amp}")
        return f"?{amp}0"

    # ========================================================================
    # ZONE COMMANDS
    # ========================================================================

    @staticmethod
    def set_attribute(zone_id: int, attribute: Attribute, value: Any) -> str:
        """Write one attribute of a zone.

        Command: <ZZopVV
        - ZZ = zone id
        - op = PA, PR, MU, DT, VO, TR, BS, BL or CH
        - VV = 00/01 for booleans, otherwise the clamped value zero-padded

        Example: <11VO25 = zone 11 volume 25
        """
        zone_id = validate_zone_id(zone_id)
        return f"<{zone_id}{attribute.op_code}{AmpCommands.encode_value(attribute, value)}"

    @staticmethod
    def encode_value(attribute: Attribute, value: Any) -> str:
        """Two-digit wire form of a value."""
        value = attribute.coerce(value)
        if attribute.is_bool:
            return "01" if value else "00"
        return f"{value:02d}"

    # ========================================================================
    # SOURCE COMMANDS
    # ========================================================================

    @staticmethod
    def set_source_name(source_id: int, name: str) -> str:
        """Set the label of a source.

        Command: S<NNNNNNNN
        - S = source id (1-6)
        - N = exactly 8 printable ASCII characters

        The firmware reads a fixed 8 byte field, so the name is always
        sanitized first.
        """
        if source_id not in SOURCE_IDS:
            raise AmpValidationError(f"Source must be 1-6, got {source_id}")
        return f"{source_id}<{AmpCommands.sanitize_name(name)}"

    @staticmethod
    def sanitize_name(name: Any) -> str:
        """Strip control and non-ASCII characters, then pad/truncate to 8."""
        text = "" if name is None else str(name)
        printable = "".join(ch for ch in text if " " <= ch <= "~")
        return printable[:SOURCE_NAME_LENGTH].ljust(SOURCE_NAME_LENGTH)

    # ========================================================================
    # DECODING
    # ========================================================================

    @staticmethod
    def parse_line(line: Union[str, bytes]) -> Optional[Frame]:
        """Decode one inbound line.

        Returns:
            Telemetry, CommandErrorFrame or Acknowledgement, or None for
            anything else (command echoes, prompts, noise).
        """
        if isinstance(line, bytes):
            line = line.decode("ascii", errors="ignore")
        text = line.strip()
        if not text:
            return None

        lowered = text.lower()
        if lowered == COMMAND_ERROR:
            return CommandErrorFrame(text)
        if lowered == ACKNOWLEDGEMENT:
            return Acknowledgement(text)

        match = TELEMETRY_RE.search(text)
        if match is None:
            return None

        groups = [int(g) for g in match.groups()]
        values: Dict[Attribute, Any] = {}
        for attribute, raw in zip(TELEMETRY_ATTRIBUTES, groups[1:10]):
            values[attribute] = raw == 1 if attribute.is_bool else raw
        return Telemetry(zone_id=groups[0], values=values)

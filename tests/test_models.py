"""Tests for attribute coercion and the zone/source/scenario records."""

import pytest

from sixzone.amp_client.exceptions import AmpNotFoundError, AmpValidationError
from sixzone.amp_client.models import (
    Attribute,
    Scenario,
    Source,
    ZoneState,
    default_sources,
    default_zones,
    lowest_unused_id,
    validate_zone_id,
    zone_ids_for,
)


def test_attribute_parse():
    assert Attribute.parse("volume") is Attribute.VOLUME
    assert Attribute.parse("VOLUME") is Attribute.VOLUME
    assert Attribute.parse(Attribute.BASS) is Attribute.BASS
    with pytest.raises(AmpValidationError):
        Attribute.parse("loudness")


def test_only_tone_and_level_attributes_are_rampable():
    rampable = {a for a in Attribute if a.rampable}
    assert rampable == {Attribute.VOLUME, Attribute.TREBLE, Attribute.BASS, Attribute.BALANCE}


@pytest.mark.parametrize(
    "attribute, raw, expected",
    [
        (Attribute.VOLUME, 50, 38),
        (Attribute.VOLUME, -1, 0),
        (Attribute.VOLUME, "12", 12),
        (Attribute.VOLUME, 12.6, 13),
        (Attribute.SOURCE, 0, 1),
        (Attribute.SOURCE, 9, 6),
        (Attribute.BALANCE, 21, 20),
        (Attribute.MUTE, 1, True),
        (Attribute.MUTE, "false", False),
        (Attribute.POWER, True, True),
    ],
)
def test_coerce_clamps_and_converts(attribute, raw, expected):
    assert attribute.coerce(raw) == expected


@pytest.mark.parametrize("raw", ["loud", None, [1], {}, float("inf"), float("-inf"), float("nan")])
def test_coerce_rejects_uninterpretable_numbers(raw):
    with pytest.raises(AmpValidationError):
        Attribute.VOLUME.coerce(raw)


def test_coerce_rejects_uninterpretable_booleans():
    with pytest.raises(AmpValidationError):
        Attribute.MUTE.coerce("maybe")


def test_zone_ids_per_amp_count():
    assert zone_ids_for(1) == (11, 12, 13, 14, 15, 16)
    assert len(zone_ids_for(3)) == 18
    assert zone_ids_for(2)[-1] == 26


def test_validate_zone_id():
    assert validate_zone_id("21") == 21
    for bad in (0, 17, 40, "x"):
        with pytest.raises(AmpNotFoundError):
            validate_zone_id(bad)


def test_zone_defaults():
    zone = ZoneState(zone_id=14)

    assert zone.name == "Zone 14"
    assert zone.amp == 1
    assert (zone.volume, zone.treble, zone.bass, zone.balance, zone.source) == (20, 7, 7, 10, 1)
    assert not any((zone.pa, zone.power, zone.mute, zone.dnd))


def test_zone_from_dict_clamps_persisted_values():
    zone = ZoneState.from_dict({"id": 22, "name": "Kitchen", "volume": 80, "mute": 1})

    assert zone.zone_id == 22
    assert zone.name == "Kitchen"
    assert zone.volume == 38
    assert zone.mute is True


def test_zone_as_dict_uses_id_key():
    data = ZoneState(zone_id=11).as_dict()

    assert data["id"] == 11
    assert "zone_id" not in data
    assert data["volume"] == 20


def test_defaults_cover_six_sources():
    sources = default_sources()

    assert [s.id for s in sources] == [1, 2, 3, 4, 5, 6]
    assert all(s.enabled for s in sources)
    assert sources[0].name == "Source 1"
    assert len(default_zones(2)) == 12


def test_source_from_dict_rejects_unknown_id():
    with pytest.raises(AmpNotFoundError):
        Source.from_dict({"id": 7})


def test_scenario_round_trip_keeps_zone_delta_order():
    scenario = Scenario.from_dict(
        {"id": 2, "name": "Dinner", "zones": [{"id": 11, "power": True, "volume": 10}]}
    )

    assert list(scenario.as_dict()["zones"][0]) == ["id", "power", "volume"]


def test_lowest_unused_id():
    assert lowest_unused_id([]) == 1
    assert lowest_unused_id([1, 2, 4]) == 3
    assert lowest_unused_id(iter([2, 3])) == 1

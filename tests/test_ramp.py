"""Tests for ramps: the pure tick function and the timer that drives it."""

import asyncio
from unittest.mock import Mock

import pytest

from sixzone.amp_client.exceptions import AmpNotFoundError, AmpValidationError
from sixzone.amp_client.models import Attribute, default_zones
from sixzone.amp_client.ramp import (
    Direction,
    Ramp,
    RampEntry,
    RampScheduler,
    RampWrite,
    advance,
)
from sixzone.amp_client.store import ZoneStateStore


def _snapshot(zone_id=11, **values):
    base = {attr: attr.coerce(0) for attr in Attribute}
    base.update({Attribute.parse(k): v for k, v in values.items()})
    return {zone_id: base}


def test_create_targets_range_limits():
    up = Ramp.create(11, Attribute.VOLUME, Direction.UP, 2)
    down = Ramp.create(11, Attribute.BALANCE, Direction.DOWN, 3)

    assert up.entries[Attribute.VOLUME] == RampEntry(target=38, step=2)
    assert down.entries[Attribute.BALANCE] == RampEntry(target=0, step=-3)


def test_advance_steps_towards_target():
    ramps = {11: Ramp.create(11, Attribute.VOLUME, Direction.UP)}

    writes, remaining = advance(ramps, _snapshot(volume=10))

    assert writes == [RampWrite(11, Attribute.VOLUME, 11)]
    assert 11 in remaining


def test_advance_does_not_modify_input():
    ramp = Ramp.create(11, Attribute.VOLUME, Direction.UP)
    ramps = {11: ramp}

    advance(ramps, _snapshot(volume=37))

    assert Attribute.VOLUME in ramp.entries


def test_advance_writes_target_and_finishes_when_reached():
    """A step that would overshoot lands exactly on the target."""
    ramps = {11: Ramp.create(11, Attribute.VOLUME, Direction.UP, 5)}

    writes, remaining = advance(ramps, _snapshot(volume=36))

    assert writes == [RampWrite(11, Attribute.VOLUME, 38)]
    assert remaining == {}


def test_advance_finishes_without_write_at_target():
    ramps = {11: Ramp.create(11, Attribute.TREBLE, Direction.DOWN)}

    writes, remaining = advance(ramps, _snapshot(treble=0))

    assert writes == []
    assert remaining == {}


def test_advance_zero_step_finishes_immediately():
    ramps = {11: Ramp(11, {Attribute.BASS: RampEntry(target=14, step=0)})}

    writes, remaining = advance(ramps, _snapshot(bass=3))

    assert writes == []
    assert remaining == {}


def test_advance_moves_every_entry_of_a_zone():
    ramp = Ramp.create(11, Attribute.VOLUME, Direction.UP)
    ramp.merge(Ramp.create(11, Attribute.BASS, Direction.DOWN))

    writes, remaining = advance({11: ramp}, _snapshot(volume=5, bass=7))

    assert writes == [
        RampWrite(11, Attribute.VOLUME, 6),
        RampWrite(11, Attribute.BASS, 6),
    ]
    assert set(remaining[11].entries) == {Attribute.VOLUME, Attribute.BASS}


def test_advance_drops_ramp_for_missing_zone():
    writes, remaining = advance(
        {12: Ramp.create(12, Attribute.VOLUME, Direction.UP)}, _snapshot(volume=5)
    )

    assert writes == []
    assert remaining == {}


def test_merge_replaces_same_attribute():
    ramp = Ramp.create(11, Attribute.VOLUME, Direction.UP)
    ramp.merge(Ramp.create(11, Attribute.VOLUME, Direction.DOWN))

    assert ramp.entries == {Attribute.VOLUME: RampEntry(target=0, step=-1)}


def test_merge_ignores_other_zone():
    ramp = Ramp.create(11, Attribute.VOLUME, Direction.UP)
    ramp.merge(Ramp.create(12, Attribute.BASS, Direction.UP))

    assert list(ramp.entries) == [Attribute.VOLUME]


def test_stop_named_attributes_or_all():
    ramp = Ramp.create(11, Attribute.VOLUME, Direction.UP)
    ramp.merge(Ramp.create(11, Attribute.BASS, Direction.UP))

    ramp.stop([Attribute.BASS])
    assert list(ramp.entries) == [Attribute.VOLUME]

    ramp.stop()
    assert ramp.finished


# ============================================================================
# RampScheduler
# ============================================================================


@pytest.fixture
def send():
    return Mock()


@pytest.fixture
def store(send):
    return ZoneStateStore(default_zones(1), send=send)


def test_start_ramp_validates_input(store):
    ramps = RampScheduler(store)

    with pytest.raises(AmpValidationError):
        ramps.start_ramp(11, "power", "up")
    with pytest.raises(AmpValidationError):
        ramps.start_ramp(11, "volume", "sideways")
    with pytest.raises(AmpValidationError):
        ramps.start_ramp(11, "volume", "up", step=0)
    with pytest.raises(AmpNotFoundError):
        ramps.start_ramp(17, "volume", "up")

    assert ramps.ramps == {}


def test_manual_ticks_route_writes_through_store(store, send):
    """Without a running loop the tick is driven by hand."""
    ramps = RampScheduler(store)
    store.request_write(11, "volume", 35)
    send.reset_mock()

    ramps.start_ramp(11, "volume", "up")
    assert not ramps.is_armed

    ramps.tick()
    ramps.tick()
    ramps.tick()
    ramps.tick()

    assert [c.args[0] for c in send.call_args_list] == ["<11VO36", "<11VO37", "<11VO38"]
    assert ramps.ramps == {}


def test_ramp_continues_from_reported_value(store, send):
    """Telemetry that lands mid-ramp becomes the new starting point."""
    ramps = RampScheduler(store)
    ramps.start_ramp(11, "volume", "down", step=2)

    ramps.tick()
    store.get(11).volume = 5  # as if the device reported it
    ramps.tick()

    assert send.call_args_list[-1].args[0] == "<11VO03"


def test_stop_ramp_keeps_other_attributes(store):
    ramps = RampScheduler(store)
    ramps.start_ramp(11, "volume", "up")
    ramps.start_ramp(11, "bass", "up")

    ramps.stop_ramp(11, "volume")
    assert list(ramps.ramps[11].entries) == [Attribute.BASS]

    ramps.stop_ramp(11)
    assert ramps.ramps == {}


def test_stop_ramp_without_ramp_is_a_no_op(store):
    ramps = RampScheduler(store)
    ramps.stop_ramp(11)
    ramps.stop_ramp(11, "volume")

    assert ramps.ramps == {}


@pytest.mark.asyncio
async def test_timer_arms_and_disarms(store, send):
    ramps = RampScheduler(store, interval=0.001)
    store.request_write(11, "treble", 12)
    send.reset_mock()

    ramps.start_ramp(11, "treble", "up")
    assert ramps.is_armed

    for _ in range(200):
        if not ramps.ramps and not ramps.is_armed:
            break
        await asyncio.sleep(0.005)

    assert store.get(11, "treble") == 14
    assert [c.args[0] for c in send.call_args_list] == ["<11TR13", "<11TR14"]
    assert not ramps.is_armed


@pytest.mark.asyncio
async def test_close_cancels_timer(store):
    ramps = RampScheduler(store, interval=10)
    ramps.start_ramp(11, "volume", "up")
    assert ramps.is_armed

    await ramps.close()

    assert not ramps.is_armed
    assert ramps.ramps == {}


@pytest.mark.parametrize(
    "attribute, start, direction, step",
    [
        (Attribute.VOLUME, 0, Direction.UP, 1),
        (Attribute.VOLUME, 17, Direction.UP, 5),
        (Attribute.TREBLE, 14, Direction.DOWN, 3),
        (Attribute.BALANCE, 19, Direction.UP, 4),
        (Attribute.BASS, 1, Direction.DOWN, 2),
    ],
)
def test_ramp_always_lands_on_target(attribute, start, direction, step):
    """Every ramp ends after finitely many ticks, on exactly its target."""
    ramp = Ramp.create(11, attribute, direction, step)
    target = ramp.entries[attribute].target
    ramps = {11: ramp}
    snapshot = _snapshot(**{attribute.value: start})
    emitted = []

    for _ in range(100):
        writes, ramps = advance(ramps, snapshot)
        for write in writes:
            snapshot[11][write.attribute] = write.value
            emitted.append(write.value)
        if not ramps:
            break

    assert ramps == {}
    assert emitted[-1] == target
    assert all(attribute.minimum <= value <= attribute.maximum for value in emitted)

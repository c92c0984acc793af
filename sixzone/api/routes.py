"""
API routes for the sixzone bridge
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends

from ..amp_client.models import coerce_int
from ..amp_client.ramp import Direction
from ..bridge import AmpBridge
from .deps import get_bridge
from .models import (
    HealthModel,
    RampRequest,
    ScenarioModel,
    ScenarioUpdate,
    SourceModel,
    SourceUpdate,
    ZoneModel,
)

_LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api")
health_router = APIRouter()


def _zones(bridge: AmpBridge) -> List[Dict[str, Any]]:
    return [zone.as_dict() for zone in bridge.list_zones()]


def _as_list(body: Any) -> Any:
    return [body] if isinstance(body, dict) else body


def _with_id(body: Any, key: Any) -> Dict[str, Any]:
    delta = dict(body) if isinstance(body, dict) else {}
    delta.pop("id", None)
    return {"id": key, **delta}


def _dump(update) -> Dict[str, Any]:
    return update.model_dump(exclude_unset=True, exclude_none=True)


@health_router.get("/health", response_model=HealthModel)
async def health(bridge: AmpBridge = Depends(get_bridge)) -> Dict[str, Any]:
    """Link status of the bridge"""
    status = bridge.status()
    ok = status["connected"] or bridge.session is None
    return {"status": "ok" if ok else "degraded", **status}


# ============================================================================
# ZONES
# ============================================================================


@router.get("/zones", response_model=List[ZoneModel])
async def list_zones(bridge: AmpBridge = Depends(get_bridge)):
    return _zones(bridge)


# Declared before /zones/{zone} so "reload" is not taken for a zone id
@router.post("/zones/reload", response_model=List[ZoneModel])
async def reload_zones(bridge: AmpBridge = Depends(get_bridge)):
    """Ask the device for the state of every zone"""
    _LOGGER.info("Reload requested, polling every amp")
    bridge.refresh()
    return _zones(bridge)


@router.post("/zones", response_model=List[ZoneModel])
async def update_zones(
    body: Any = Body(...), bridge: AmpBridge = Depends(get_bridge)
):
    """Apply a batch of zone deltas, in order"""
    bridge.update_zones(_as_list(body))
    return _zones(bridge)


@router.get("/zones/{zone}", response_model=ZoneModel)
async def get_zone(zone: str, bridge: AmpBridge = Depends(get_bridge)):
    return bridge.get_zone(zone).as_dict()


@router.post("/zones/{zone}", response_model=ZoneModel)
async def update_zone(
    zone: str,
    body: Dict[str, Any] = Body(...),
    bridge: AmpBridge = Depends(get_bridge),
):
    bridge.update_zones([_with_id(body, zone)])
    return bridge.get_zone(zone).as_dict()


@router.get("/zones/{zone}/{attribute}")
async def get_zone_attribute(
    zone: str, attribute: str, bridge: AmpBridge = Depends(get_bridge)
) -> Any:
    return bridge.get_zone_attribute(zone, attribute)


@router.post("/zones/{zone}/{attribute}")
async def set_zone_attribute(
    zone: str,
    attribute: str,
    value: Any = Body(...),
    bridge: AmpBridge = Depends(get_bridge),
) -> Any:
    """Write one attribute; the body is the bare JSON value"""
    return bridge.set_zone_attribute(zone, attribute, value)


@router.post("/zones/{zone}/source/next")
async def next_source(zone: str, bridge: AmpBridge = Depends(get_bridge)) -> int:
    return bridge.next_source(zone)


@router.post("/zones/{zone}/source/previous")
async def previous_source(zone: str, bridge: AmpBridge = Depends(get_bridge)) -> int:
    return bridge.previous_source(zone)


@router.post("/zones/{zone}/{attribute}/up")
async def increase(
    zone: str,
    attribute: str,
    amount: Any = Body(None),
    bridge: AmpBridge = Depends(get_bridge),
) -> int:
    return bridge.adjust_zone(zone, attribute, amount or 1)


@router.post("/zones/{zone}/{attribute}/down")
async def decrease(
    zone: str,
    attribute: str,
    amount: Any = Body(None),
    bridge: AmpBridge = Depends(get_bridge),
) -> int:
    if isinstance(amount, str):
        amount = amount.strip() or None
    return bridge.adjust_zone(zone, attribute, -coerce_int(amount or 1, "amount"))


@router.post("/zones/{zone}/{attribute}/rampup")
async def ramp_up(
    zone: str,
    attribute: str,
    request: Optional[RampRequest] = None,
    bridge: AmpBridge = Depends(get_bridge),
) -> Any:
    """Start moving an attribute towards its maximum"""
    bridge.start_ramp(zone, attribute, Direction.UP, request.step if request else 1)
    return bridge.get_zone_attribute(zone, attribute)


@router.post("/zones/{zone}/{attribute}/rampdown")
async def ramp_down(
    zone: str,
    attribute: str,
    request: Optional[RampRequest] = None,
    bridge: AmpBridge = Depends(get_bridge),
) -> Any:
    """Start moving an attribute towards its minimum"""
    bridge.start_ramp(zone, attribute, Direction.DOWN, request.step if request else 1)
    return bridge.get_zone_attribute(zone, attribute)


@router.post("/zones/{zone}/{attribute}/rampstop")
async def ramp_stop(
    zone: str, attribute: str, bridge: AmpBridge = Depends(get_bridge)
) -> Any:
    """Stop one attribute's ramp; "all" stops the whole zone"""
    if attribute == "all":
        bridge.stop_ramp(zone)
        return bridge.get_zone(zone).as_dict()
    bridge.stop_ramp(zone, attribute)
    return bridge.get_zone_attribute(zone, attribute)


# ============================================================================
# SOURCES
# ============================================================================


@router.get("/sources", response_model=List[SourceModel])
async def list_sources(bridge: AmpBridge = Depends(get_bridge)):
    return [source.as_dict() for source in bridge.list_sources()]


@router.get("/sources/{source}", response_model=SourceModel)
async def get_source(source: str, bridge: AmpBridge = Depends(get_bridge)):
    return bridge.get_source(source).as_dict()


@router.post("/sources", response_model=List[SourceModel])
async def update_sources(
    body: List[SourceUpdate], bridge: AmpBridge = Depends(get_bridge)
):
    bridge.update_sources([_dump(update) for update in body])
    return [source.as_dict() for source in bridge.list_sources()]


@router.post("/sources/{source}", response_model=SourceModel)
async def update_source(
    source: str, body: SourceUpdate, bridge: AmpBridge = Depends(get_bridge)
):
    bridge.get_source(source)
    bridge.update_sources([_with_id(_dump(body), source)])
    return bridge.get_source(source).as_dict()


# ============================================================================
# SCENARIOS
# ============================================================================


@router.get("/scenarios", response_model=List[ScenarioModel])
async def list_scenarios(bridge: AmpBridge = Depends(get_bridge)):
    return [scenario.as_dict() for scenario in bridge.list_scenarios()]


@router.get("/scenarios/{scenario}", response_model=ScenarioModel)
async def get_scenario(scenario: str, bridge: AmpBridge = Depends(get_bridge)):
    return bridge.get_scenario(scenario).as_dict()


@router.post("/scenarios", response_model=List[ScenarioModel])
async def update_scenarios(
    body: List[ScenarioUpdate], bridge: AmpBridge = Depends(get_bridge)
):
    """Create (no or unknown id) or update scenarios"""
    bridge.update_scenarios([_dump(update) for update in body])
    return [scenario.as_dict() for scenario in bridge.list_scenarios()]


@router.post("/scenarios/{scenario}", response_model=ScenarioModel)
async def update_scenario(
    scenario: int, body: ScenarioUpdate, bridge: AmpBridge = Depends(get_bridge)
):
    updated = bridge.update_scenarios([_with_id(_dump(body), scenario)])
    return updated[0].as_dict()


@router.post("/scenarios/{scenario}/engage", response_model=List[ZoneModel])
async def engage_scenario(scenario: str, bridge: AmpBridge = Depends(get_bridge)):
    """Apply a scenario's zone deltas"""
    bridge.engage_scenario(scenario)
    return _zones(bridge)


@router.delete("/scenarios/{scenario}", response_model=List[ScenarioModel])
async def delete_scenario(scenario: str, bridge: AmpBridge = Depends(get_bridge)):
    bridge.delete_scenario(scenario)
    return [s.as_dict() for s in bridge.list_scenarios()]

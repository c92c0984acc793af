"""Request and response bodies of the HTTP API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ZoneModel(BaseModel):
    id: int
    name: str
    description: str = ""
    pa: bool
    power: bool
    mute: bool
    dnd: bool
    volume: int = Field(..., ge=0, le=38)
    treble: int = Field(..., ge=0, le=14)
    bass: int = Field(..., ge=0, le=14)
    balance: int = Field(..., ge=0, le=20)
    source: int = Field(..., ge=1, le=6)


class SourceModel(BaseModel):
    id: int = Field(..., ge=1, le=6)
    enabled: bool = True
    name: str
    description: str = ""


class ScenarioModel(BaseModel):
    id: int = Field(..., ge=1)
    name: str = ""
    description: str = ""
    # Zone deltas keep the key order they were stored with
    zones: List[Dict[str, Any]] = []


class SourceUpdate(BaseModel):
    """Partial source update; unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    id: Optional[int] = None
    enabled: Optional[bool] = None
    name: Optional[str] = None
    description: Optional[str] = None


class ScenarioUpdate(BaseModel):
    """Create or partially update a scenario."""

    model_config = ConfigDict(extra="forbid")

    id: Optional[int] = Field(None, ge=1)
    name: Optional[str] = None
    description: Optional[str] = None
    zones: Optional[List[Dict[str, Any]]] = None


class RampRequest(BaseModel):
    step: int = Field(1, ge=1, description="Attribute units per tick")


class HealthModel(BaseModel):
    status: str
    connected: bool
    last_error: Optional[str] = None
    pending_writes: int = 0
    active_ramps: int = 0

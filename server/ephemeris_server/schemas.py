# server/ephemeris_server/schemas.py
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel

from .ephemeris.bodies import BodyName

AspectName = Literal["conjunction", "sextile", "square", "trine", "opposition"]
EventName = Literal["rising", "setting", "culmination"]
Direction = Literal["forward", "retrograde"]


class Location(BaseModel):
    latitude: float
    longitude: float


class PositionOut(BaseModel):
    apparent_longitude: float
    apparent_latitude: Optional[float] = None
    distance_au: Optional[float] = None
    ra_hours: Optional[float] = None
    dec_deg: Optional[float] = None
    altitude: Optional[float] = None
    azimuth: Optional[float] = None


class EphemerisDataResponse(BaseModel):
    datetime: str
    location: Location
    bodies: Dict[BodyName, Optional[PositionOut]]


class SingleBodyResponse(BaseModel):
    datetime: str
    body: BodyName
    position: PositionOut


class AspectOut(BaseModel):
    body1: BodyName
    body2: BodyName
    aspect: AspectName
    angle: float
    orb: float
    exact: bool


class AspectsResponse(BaseModel):
    datetime: str
    aspects: List[AspectOut]
    orb_used: float


class MoonPhaseResponse(BaseModel):
    datetime: str
    phase: str
    illumination: float
    elongation: float
    phase_angle: float


class EventOut(BaseModel):
    event: EventName
    time: str
    altitude: float
    azimuth: float


class DailyEventsResponse(BaseModel):
    body: BodyName
    date: str
    events: List[EventOut]


class ZodiacResponse(BaseModel):
    datetime: str
    body: BodyName
    longitude: float
    sign: str
    degree: float
    position: float


class ComparisonOut(BaseModel):
    date1_position: float
    date2_position: float
    movement: float
    direction: Direction


class CompareResponse(BaseModel):
    date1: str
    date2: str
    comparisons: Dict[BodyName, ComparisonOut]


class EarthResponse(BaseModel):
    datetime: str
    earth: None = None
    note: str


class ServerInfoResponse(BaseModel):
    name: str
    version: str
    description: str
    supported_bodies: List[BodyName]
    tools: List[str]
    timestamp: str


class HealthzResponse(BaseModel):
    status: str = "healthy"
    timestamp: Optional[str] = None
    version: Optional[str] = None
    provider: dict
    bodies: List[BodyName]
    metrics: dict


class ErrorOut(BaseModel):
    code: str
    title: str
    detail: Optional[str] = None
    tip: Optional[str] = None

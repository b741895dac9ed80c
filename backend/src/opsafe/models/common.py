"""
Shared Models
Locations and document helpers used by equipment and assignments
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from enum import Enum


class LocationType(str, Enum):
    """Where a piece of equipment is"""
    STOCK = "stock"
    POST = "post"
    OPERATOR = "operator"
    MAINTENANCE_PROVIDER = "maintenanceProvider"


class LocationIn(BaseModel):
    """Requested location"""
    type: LocationType
    ref_id: Optional[str] = Field(None, description="Post, operator or provider id")


class LocationOut(BaseModel):
    type: LocationType
    ref_id: Optional[str] = None


def stock_location() -> Dict[str, Any]:
    """Location of equipment that was never assigned"""
    return {"type": LocationType.STOCK.value, "ref_id": None}


def oid_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def serialize_location(location: Optional[Dict[str, Any]]) -> LocationOut:
    location = location or stock_location()
    return LocationOut(type=location["type"], ref_id=oid_str(location.get("ref_id")))

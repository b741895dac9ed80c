"""
Assignment Models
Checkout / checkin / transfer events of a piece of equipment
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime
from enum import Enum

from opsafe.models.common import LocationIn, LocationOut, serialize_location
from opsafe.models.equipment import EquipmentStatus


class AssignmentAction(str, Enum):
    """Assignment actions"""
    CHECKOUT = "checkout"
    CHECKIN = "checkin"
    TRANSFER = "transfer"


class AssignmentCreate(BaseModel):
    """Assignment creation"""
    equipment_id: str
    action: AssignmentAction
    to_location: LocationIn
    effective_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)

    class Config:
        json_schema_extra = {
            "example": {
                "equipment_id": "66d1c2a7f1b2c3d4e5f6a7b9",
                "action": "checkout",
                "to_location": {"type": "post", "ref_id": "66d1c2a7f1b2c3d4e5f6a7c0"},
            }
        }


class AssignmentUpdate(BaseModel):
    """Only the date and notes of a recorded assignment can change"""
    effective_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)


class AssignmentOut(BaseModel):
    """Assignment output"""
    id: str
    organization_id: str
    equipment_id: str
    from_location: LocationOut
    to_location: LocationOut
    from_status: Optional[EquipmentStatus] = None
    to_status: Optional[EquipmentStatus] = None
    action: AssignmentAction
    effective_at: datetime
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False


def serialize_assignment(doc: Dict[str, Any]) -> AssignmentOut:
    return AssignmentOut(
        id=str(doc["_id"]),
        organization_id=str(doc["organization_id"]),
        equipment_id=str(doc["equipment_id"]),
        from_location=serialize_location(doc.get("from_location")),
        to_location=serialize_location(doc.get("to_location")),
        from_status=doc.get("from_status"),
        to_status=doc.get("to_status"),
        action=doc["action"],
        effective_at=doc["effective_at"],
        notes=doc.get("notes"),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
        is_deleted=doc.get("is_deleted", False),
    )

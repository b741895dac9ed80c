"""
Equipment Models
Physical assets owned by an organization
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional
from datetime import datetime
from enum import Enum

from opsafe.models.common import LocationIn, LocationOut, oid_str, serialize_location


class EquipmentStatus(str, Enum):
    """Equipment statuses"""
    AVAILABLE = "available"            # In stock, ready to be handed out
    IN_USE = "inuse"                   # Checked out
    IN_MAINTENANCE = "inmaintenance"   # At least one pending maintenance order
    DECOMMISSIONED = "decommissioned"
    LOST = "lost"


# Statuses an operator may set directly; the others follow assignments and orders
ManualEquipmentStatus = Literal["available", "decommissioned", "lost"]


class EquipmentCreate(BaseModel):
    """Equipment creation"""
    equipment_type_id: str
    asset_tag: str = Field(..., min_length=1, max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100)
    status: EquipmentStatus = EquipmentStatus.AVAILABLE
    current_location: Optional[LocationIn] = None
    purchase_date: Optional[datetime] = None
    warranty_expires_at: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    contract_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)

    class Config:
        json_schema_extra = {
            "example": {
                "equipment_type_id": "66d1c2a7f1b2c3d4e5f6a7b8",
                "asset_tag": "TAG-0001",
                "serial_number": "SN-0001",
                "current_location": {"type": "stock"},
            }
        }


class EquipmentUpdate(BaseModel):
    """Equipment update; location only changes through assignments"""
    equipment_type_id: Optional[str] = None
    asset_tag: Optional[str] = Field(None, min_length=1, max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100)
    status: Optional[ManualEquipmentStatus] = None
    purchase_date: Optional[datetime] = None
    warranty_expires_at: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    contract_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)


class EquipmentOut(BaseModel):
    """Equipment output"""
    id: str
    organization_id: str
    equipment_type_id: str
    asset_tag: str
    serial_number: Optional[str] = None
    status: EquipmentStatus
    current_location: LocationOut
    purchase_date: Optional[datetime] = None
    warranty_expires_at: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    contract_id: Optional[str] = None
    notes: Optional[str] = None
    version: int = 0
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False


def serialize_equipment(doc: Dict[str, Any]) -> EquipmentOut:
    return EquipmentOut(
        id=str(doc["_id"]),
        organization_id=str(doc["organization_id"]),
        equipment_type_id=str(doc["equipment_type_id"]),
        asset_tag=doc["asset_tag"],
        serial_number=doc.get("serial_number"),
        status=doc["status"],
        current_location=serialize_location(doc.get("current_location")),
        purchase_date=doc.get("purchase_date"),
        warranty_expires_at=doc.get("warranty_expires_at"),
        valid_until=doc.get("valid_until"),
        contract_id=oid_str(doc.get("contract_id")),
        notes=doc.get("notes"),
        version=doc.get("version", 0),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
        is_deleted=doc.get("is_deleted", False),
    )

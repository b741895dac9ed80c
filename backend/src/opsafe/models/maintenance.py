"""
Maintenance Order Models
Preventive / corrective maintenance workflows and their status machine
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, FrozenSet, Optional
from datetime import datetime
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class MaintenanceOrderType(str, Enum):
    """Maintenance types"""
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"


class MaintenanceOrderStatus(str, Enum):
    """Maintenance order statuses"""
    OPEN = "open"
    IN_PROGRESS = "inprogress"
    CLOSED = "closed"
    CANCELLED = "cancelled"


# Orders in these statuses keep their equipment in maintenance
PENDING_STATUSES: FrozenSet[MaintenanceOrderStatus] = frozenset({
    MaintenanceOrderStatus.OPEN,
    MaintenanceOrderStatus.IN_PROGRESS,
})

SETTLED_STATUSES: FrozenSet[MaintenanceOrderStatus] = frozenset({
    MaintenanceOrderStatus.CLOSED,
    MaintenanceOrderStatus.CANCELLED,
})

ALLOWED_TRANSITIONS: Dict[MaintenanceOrderStatus, FrozenSet[MaintenanceOrderStatus]] = {
    MaintenanceOrderStatus.OPEN: frozenset({
        MaintenanceOrderStatus.IN_PROGRESS,
        MaintenanceOrderStatus.CLOSED,
        MaintenanceOrderStatus.CANCELLED,
    }),
    MaintenanceOrderStatus.IN_PROGRESS: frozenset({
        MaintenanceOrderStatus.OPEN,
        MaintenanceOrderStatus.CLOSED,
        MaintenanceOrderStatus.CANCELLED,
    }),
    MaintenanceOrderStatus.CLOSED: frozenset(),
    MaintenanceOrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: MaintenanceOrderStatus, requested: MaintenanceOrderStatus) -> bool:
    """Re-applying the current status is always allowed"""
    current = MaintenanceOrderStatus(current)
    requested = MaintenanceOrderStatus(requested)
    return requested == current or requested in ALLOWED_TRANSITIONS[current]


# ============================================================================
# REQUEST / RESPONSE
# ============================================================================

class MaintenanceOrderCreate(BaseModel):
    """Maintenance order creation; orders always start open"""
    equipment_id: str
    type: MaintenanceOrderType
    description: Optional[str] = Field(None, max_length=1000)
    opened_at: Optional[datetime] = None
    next_due_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "equipment_id": "66d1c2a7f1b2c3d4e5f6a7b9",
                "type": "preventive",
                "description": "Annual inspection",
            }
        }


class MaintenanceOrderUpdate(BaseModel):
    """Partial update; only fields present in the request are applied"""
    type: Optional[MaintenanceOrderType] = None
    status: Optional[MaintenanceOrderStatus] = None
    description: Optional[str] = Field(None, max_length=1000)
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    next_due_at: Optional[datetime] = None


class MaintenanceOrderOut(BaseModel):
    """Maintenance order output"""
    id: str
    organization_id: str
    equipment_id: str
    type: MaintenanceOrderType
    status: MaintenanceOrderStatus
    opened_at: datetime
    closed_at: Optional[datetime] = None
    description: Optional[str] = None
    next_due_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False


def serialize_maintenance_order(doc: Dict[str, Any]) -> MaintenanceOrderOut:
    return MaintenanceOrderOut(
        id=str(doc["_id"]),
        organization_id=str(doc["organization_id"]),
        equipment_id=str(doc["equipment_id"]),
        type=doc["type"],
        status=doc["status"],
        opened_at=doc["opened_at"],
        closed_at=doc.get("closed_at"),
        description=doc.get("description"),
        next_due_at=doc.get("next_due_at"),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
        is_deleted=doc.get("is_deleted", False),
    )

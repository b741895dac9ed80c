"""
Equipment API
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from opsafe.api.v1.deps import (
    get_equipment_service, get_organization_id, require_write_role
)
from opsafe.models.equipment import EquipmentCreate, EquipmentOut, EquipmentStatus, EquipmentUpdate
from opsafe.services.equipment_service import EquipmentService


router = APIRouter(prefix="/organizations/{organization_id}/equipments", tags=["Equipments"])


@router.get("", response_model=List[EquipmentOut])
async def list_equipments(
    status_filter: Optional[EquipmentStatus] = Query(None, alias="status"),
    organization_id: str = Depends(get_organization_id),
    service: EquipmentService = Depends(get_equipment_service),
):
    """List the organization's equipment"""
    return await service.list_equipments(organization_id, status=status_filter)


@router.get("/{equipment_id}", response_model=EquipmentOut)
async def get_equipment(
    equipment_id: str,
    organization_id: str = Depends(get_organization_id),
    service: EquipmentService = Depends(get_equipment_service),
):
    return await service.get_equipment(organization_id, equipment_id)


@router.post("", response_model=EquipmentOut, status_code=status.HTTP_201_CREATED)
async def create_equipment(
    data: EquipmentCreate,
    organization_id: str = Depends(get_organization_id),
    service: EquipmentService = Depends(get_equipment_service),
    _=Depends(require_write_role()),
):
    """
    Register equipment
    Starts in stock unless a location is given
    """
    return await service.create_equipment(organization_id, data)


@router.patch("/{equipment_id}", response_model=EquipmentOut)
async def update_equipment(
    equipment_id: str,
    data: EquipmentUpdate,
    organization_id: str = Depends(get_organization_id),
    service: EquipmentService = Depends(get_equipment_service),
    _=Depends(require_write_role()),
):
    return await service.update_equipment(organization_id, equipment_id, data)


@router.delete("/{equipment_id}")
async def delete_equipment(
    equipment_id: str,
    organization_id: str = Depends(get_organization_id),
    service: EquipmentService = Depends(get_equipment_service),
    _=Depends(require_write_role()),
):
    await service.soft_delete_equipment(organization_id, equipment_id)
    return {"success": True}

"""
Maintenance Order API
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from opsafe.api.v1.deps import (
    get_maintenance_service, get_organization_id, require_write_role
)
from opsafe.models.maintenance import (
    MaintenanceOrderCreate, MaintenanceOrderOut, MaintenanceOrderStatus, MaintenanceOrderUpdate
)
from opsafe.services.maintenance_service import MaintenanceOrderService


router = APIRouter(
    prefix="/organizations/{organization_id}/maintenance-orders",
    tags=["Maintenance Orders"],
)


@router.get("", response_model=List[MaintenanceOrderOut])
async def list_maintenance_orders(
    equipment_id: Optional[str] = None,
    status_filter: Optional[MaintenanceOrderStatus] = Query(None, alias="status"),
    organization_id: str = Depends(get_organization_id),
    service: MaintenanceOrderService = Depends(get_maintenance_service),
):
    return await service.list_maintenance_orders(
        organization_id, equipment_id=equipment_id, status=status_filter
    )


@router.get("/{order_id}", response_model=MaintenanceOrderOut)
async def get_maintenance_order(
    order_id: str,
    organization_id: str = Depends(get_organization_id),
    service: MaintenanceOrderService = Depends(get_maintenance_service),
):
    return await service.get_maintenance_order(organization_id, order_id)


@router.post("", response_model=MaintenanceOrderOut, status_code=status.HTTP_201_CREATED)
async def create_maintenance_order(
    data: MaintenanceOrderCreate,
    organization_id: str = Depends(get_organization_id),
    service: MaintenanceOrderService = Depends(get_maintenance_service),
    _=Depends(require_write_role()),
):
    """
    Open a maintenance order
    The equipment is put in maintenance
    """
    return await service.create_maintenance_order(organization_id, data)


@router.patch("/{order_id}", response_model=MaintenanceOrderOut)
async def update_maintenance_order(
    order_id: str,
    data: MaintenanceOrderUpdate,
    organization_id: str = Depends(get_organization_id),
    service: MaintenanceOrderService = Depends(get_maintenance_service),
    _=Depends(require_write_role()),
):
    """
    Update an order
    Closing or cancelling the last pending order makes the equipment available again
    """
    return await service.update_maintenance_order(organization_id, order_id, data)


@router.delete("/{order_id}")
async def delete_maintenance_order(
    order_id: str,
    organization_id: str = Depends(get_organization_id),
    service: MaintenanceOrderService = Depends(get_maintenance_service),
    _=Depends(require_write_role()),
):
    await service.soft_delete_maintenance_order(organization_id, order_id)
    return {"success": True}

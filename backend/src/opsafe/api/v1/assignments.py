"""
Assignment API
Checkout / checkin / transfer of equipment
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from opsafe.api.v1.deps import (
    get_assignment_service, get_organization_id, require_write_role
)
from opsafe.models.assignment import AssignmentCreate, AssignmentOut, AssignmentUpdate
from opsafe.services.assignment_service import AssignmentService


router = APIRouter(prefix="/organizations/{organization_id}/assignments", tags=["Assignments"])


@router.get("", response_model=List[AssignmentOut])
async def list_assignments(
    equipment_id: Optional[str] = None,
    organization_id: str = Depends(get_organization_id),
    service: AssignmentService = Depends(get_assignment_service),
):
    """
    List assignments, most recent first
    Filter by equipment to get its custody history
    """
    return await service.list_assignments(organization_id, equipment_id=equipment_id)


@router.get("/{assignment_id}", response_model=AssignmentOut)
async def get_assignment(
    assignment_id: str,
    organization_id: str = Depends(get_organization_id),
    service: AssignmentService = Depends(get_assignment_service),
):
    return await service.get_assignment(organization_id, assignment_id)


@router.post("", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    data: AssignmentCreate,
    organization_id: str = Depends(get_organization_id),
    service: AssignmentService = Depends(get_assignment_service),
    _=Depends(require_write_role()),
):
    """
    Record an assignment
    The equipment moves to `to_location` and its status follows the action
    """
    return await service.create_assignment(organization_id, data)


@router.patch("/{assignment_id}", response_model=AssignmentOut)
async def update_assignment(
    assignment_id: str,
    data: AssignmentUpdate,
    organization_id: str = Depends(get_organization_id),
    service: AssignmentService = Depends(get_assignment_service),
    _=Depends(require_write_role()),
):
    """Only effective_at and notes can change"""
    return await service.update_assignment(organization_id, assignment_id, data)


@router.delete("/{assignment_id}")
async def delete_assignment(
    assignment_id: str,
    revert_equipment: bool = Query(False, description="Put the equipment back where this assignment took it from"),
    organization_id: str = Depends(get_organization_id),
    service: AssignmentService = Depends(get_assignment_service),
    _=Depends(require_write_role()),
):
    await service.soft_delete_assignment(
        organization_id, assignment_id, revert_equipment=revert_equipment
    )
    return {"success": True}

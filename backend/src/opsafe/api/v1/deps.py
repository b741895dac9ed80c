"""
FastAPI Dependencies
JWT claims, role checks and organization scoping
"""
from fastapi import Depends, HTTPException, Path, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from motor.motor_asyncio import AsyncIOMotorDatabase
import jwt

from opsafe.core.config import settings
from opsafe.db.mongo import get_db
from opsafe.services.assignment_service import AssignmentService
from opsafe.services.equipment_service import EquipmentService
from opsafe.services.maintenance_service import MaintenanceOrderService


# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Claims of the bearer token: user_id, organization_id, role
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication failed",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.PyJWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    organization_id = payload.get("organization_id") or payload.get("organizationId")
    role = payload.get("role")

    if not user_id or not organization_id or not role:
        raise credentials_exception

    return {
        "user_id": user_id,
        "organization_id": organization_id,
        "role": role,
    }


async def get_organization_id(
    organization_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
) -> str:
    """
    Organization from the path, which must be the caller's own
    """
    if (
        organization_id != current_user["organization_id"]
        and current_user["role"] not in settings.CROSS_ORGANIZATION_ROLES
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this organization",
        )
    return organization_id


def require_roles(*roles: str):
    """
    Dependency factory restricting a route to some roles

    Usage:
    @router.post("/")
    async def create(_=Depends(require_roles("admin", "manager"))):
        ...
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user["role"] not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission",
            )
        return current_user

    return role_checker


def require_write_role():
    return require_roles(*settings.WRITE_ROLES)


# Services

async def get_equipment_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> EquipmentService:
    return EquipmentService(db)


async def get_assignment_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> AssignmentService:
    return AssignmentService(db)


async def get_maintenance_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> MaintenanceOrderService:
    return MaintenanceOrderService(db)

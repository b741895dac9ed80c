"""
Equipment Service
Organization-scoped equipment records
"""
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from bson import ObjectId
import logging

from opsafe.core.exceptions import ConflictError, NotFoundError
from opsafe.db.mongo import Collections
from opsafe.models.common import stock_location
from opsafe.models.equipment import (
    EquipmentCreate, EquipmentOut, EquipmentStatus, EquipmentUpdate, serialize_equipment
)
from opsafe.services.base import as_utc, parse_object_id, scoped, utcnow
from opsafe.services.equipment_state import EquipmentStateWriter

logger = logging.getLogger(__name__)


class EquipmentService:
    """Equipment business logic"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.state = EquipmentStateWriter(db)

    @property
    def collection(self):
        return self.db[Collections.EQUIPMENTS]

    async def _ensure_asset_tag_free(
        self,
        org_id: ObjectId,
        asset_tag: str,
        exclude_id: Optional[ObjectId] = None,
    ) -> None:
        query: Dict[str, Any] = scoped(org_id, asset_tag=asset_tag)
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}

        if await self.collection.find_one(query):
            raise ConflictError(
                f'Equipment with asset_tag "{asset_tag}" already exists in this organization'
            )

    # ========================================================================
    # READ
    # ========================================================================

    async def list_equipments(
        self,
        organization_id: str,
        status: Optional[EquipmentStatus] = None,
    ) -> List[EquipmentOut]:
        org_id = parse_object_id(organization_id, "organization")

        query = scoped(org_id)
        if status is not None:
            query["status"] = EquipmentStatus(status).value

        docs = await self.collection.find(query).sort("created_at", -1).to_list(length=None)
        return [serialize_equipment(doc) for doc in docs]

    async def get_equipment(self, organization_id: str, equipment_id: str) -> EquipmentOut:
        org_id = parse_object_id(organization_id, "organization")
        eq_id = parse_object_id(equipment_id, "equipment")

        doc = await self.collection.find_one(scoped(org_id, eq_id))
        if not doc:
            raise NotFoundError("Equipment not found")

        return serialize_equipment(doc)

    # ========================================================================
    # WRITE
    # ========================================================================

    async def create_equipment(self, organization_id: str, data: EquipmentCreate) -> EquipmentOut:
        org_id = parse_object_id(organization_id, "organization")
        type_id = parse_object_id(data.equipment_type_id, "equipment type")
        contract_id = parse_object_id(data.contract_id, "contract") if data.contract_id else None

        if data.current_location is not None:
            ref_id = data.current_location.ref_id
            current_location = {
                "type": data.current_location.type.value,
                "ref_id": parse_object_id(ref_id, "location ref") if ref_id else None,
            }
        else:
            current_location = stock_location()

        await self._ensure_asset_tag_free(org_id, data.asset_tag)

        now = utcnow()
        doc = {
            "_id": ObjectId(),
            "organization_id": org_id,
            "equipment_type_id": type_id,
            "asset_tag": data.asset_tag,
            "serial_number": data.serial_number,
            "status": EquipmentStatus(data.status).value,
            "current_location": current_location,
            "purchase_date": as_utc(data.purchase_date),
            "warranty_expires_at": as_utc(data.warranty_expires_at),
            "valid_until": as_utc(data.valid_until),
            "contract_id": contract_id,
            "notes": data.notes,
            "version": 0,
            "created_at": now,
            "updated_at": now,
            "is_deleted": False,
        }

        await self.collection.insert_one(doc)
        logger.info("Equipment %s (%s) created in organization %s", doc["_id"], data.asset_tag, org_id)

        return serialize_equipment(doc)

    async def update_equipment(
        self,
        organization_id: str,
        equipment_id: str,
        data: EquipmentUpdate,
    ) -> EquipmentOut:
        org_id = parse_object_id(organization_id, "organization")
        eq_id = parse_object_id(equipment_id, "equipment")
        patch = data.model_dump(exclude_unset=True)

        existing = await self.collection.find_one(scoped(org_id, eq_id))
        if not existing:
            raise NotFoundError("Equipment not found")

        update: Dict[str, Any] = {}

        if patch.get("equipment_type_id"):
            update["equipment_type_id"] = parse_object_id(patch["equipment_type_id"], "equipment type")

        if "contract_id" in patch:
            update["contract_id"] = (
                parse_object_id(patch["contract_id"], "contract") if patch["contract_id"] else None
            )

        if patch.get("asset_tag"):
            await self._ensure_asset_tag_free(org_id, patch["asset_tag"], exclude_id=eq_id)
            update["asset_tag"] = patch["asset_tag"]

        for field in ("serial_number", "notes"):
            if field in patch:
                update[field] = patch[field]

        for field in ("purchase_date", "warranty_expires_at", "valid_until"):
            if field in patch:
                update[field] = as_utc(patch[field])

        if update:
            update["updated_at"] = utcnow()
            result = await self.collection.find_one_and_update(
                scoped(org_id, eq_id),
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
            if not result:
                raise NotFoundError("Equipment not found")

        # Status override goes through the versioned writer like every other status change
        if patch.get("status"):
            new_status = EquipmentStatus(patch["status"]).value

            async def set_status(equipment: Dict[str, Any]) -> Optional[Dict[str, Any]]:
                if equipment["status"] == new_status:
                    return None
                return {"status": new_status}

            await self.state.apply(org_id, eq_id, set_status)

        doc = await self.collection.find_one(scoped(org_id, eq_id))
        if not doc:
            raise NotFoundError("Equipment not found")

        return serialize_equipment(doc)

    async def soft_delete_equipment(self, organization_id: str, equipment_id: str) -> None:
        org_id = parse_object_id(organization_id, "organization")
        eq_id = parse_object_id(equipment_id, "equipment")
        now = utcnow()

        result = await self.collection.find_one_and_update(
            scoped(org_id, eq_id),
            {"$set": {"is_deleted": True, "deleted_at": now, "updated_at": now}},
        )
        if not result:
            raise NotFoundError("Equipment not found")

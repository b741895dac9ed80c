"""
Maintenance Order Service
Opens, tracks and closes maintenance orders and keeps the equipment status in
step with the orders still pending
"""
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from bson import ObjectId
import logging

from opsafe.core.exceptions import (
    ConflictError, EquipmentStateConflictError, InvalidStatusTransitionError, NotFoundError
)
from opsafe.db.mongo import Collections
from opsafe.models.equipment import EquipmentStatus
from opsafe.models.maintenance import (
    PENDING_STATUSES, SETTLED_STATUSES,
    MaintenanceOrderCreate, MaintenanceOrderOut, MaintenanceOrderStatus,
    MaintenanceOrderUpdate, can_transition, serialize_maintenance_order,
)
from opsafe.services.base import as_utc, parse_object_id, scoped, utcnow
from opsafe.services.equipment_state import EquipmentStateWriter, StatusTrigger, derive_status

logger = logging.getLogger(__name__)


class MaintenanceOrderService:
    """Maintenance order business logic"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.state = EquipmentStateWriter(db)

    @property
    def collection(self):
        return self.db[Collections.MAINTENANCE_ORDERS]

    async def _find(self, org_id: ObjectId, order_id: ObjectId) -> Dict[str, Any]:
        doc = await self.collection.find_one(scoped(org_id, order_id))
        if not doc:
            raise NotFoundError("Maintenance order not found")
        return doc

    async def count_pending_orders(self, org_id: ObjectId, equipment_id: ObjectId) -> int:
        return await self.collection.count_documents(
            scoped(
                org_id,
                equipment_id=equipment_id,
                status={"$in": [s.value for s in PENDING_STATUSES]},
            )
        )

    # ========================================================================
    # EQUIPMENT STATUS SYNCHRONIZATION
    # ========================================================================

    async def _enter_maintenance(self, org_id: ObjectId, equipment_id: ObjectId) -> None:
        # Written even when already inmaintenance: the version bump makes a
        # restoration that counted before this order existed retry and recount
        async def to_maintenance(equipment: Dict[str, Any]) -> Dict[str, Any]:
            status = derive_status(equipment["status"], StatusTrigger.MAINTENANCE_OPENED)
            return {"status": status.value}

        await self.state.apply(org_id, equipment_id, to_maintenance, missing_ok=True)

    async def _restore_equipment_status(self, org_id: ObjectId, equipment_id: ObjectId) -> None:
        """Return the equipment to available once no order keeps it in maintenance"""

        async def settle(equipment: Dict[str, Any]) -> Optional[Dict[str, Any]]:
            if equipment["status"] != EquipmentStatus.IN_MAINTENANCE.value:
                return None

            pending = await self.count_pending_orders(org_id, equipment_id)
            status = derive_status(
                equipment["status"], StatusTrigger.MAINTENANCE_SETTLED, pending_orders=pending
            )
            if status.value == equipment["status"]:
                logger.debug("Equipment %s stays in maintenance, %d order(s) pending", equipment_id, pending)
                return None
            return {"status": status.value}

        write = await self.state.apply(org_id, equipment_id, settle, missing_ok=True)
        if write is not None and write.before["status"] != write.after["status"]:
            logger.info("Equipment %s back to %s, no maintenance pending", equipment_id, write.after["status"])

    # ========================================================================
    # READ
    # ========================================================================

    async def list_maintenance_orders(
        self,
        organization_id: str,
        equipment_id: Optional[str] = None,
        status: Optional[MaintenanceOrderStatus] = None,
    ) -> List[MaintenanceOrderOut]:
        org_id = parse_object_id(organization_id, "organization")

        query = scoped(org_id)
        if equipment_id:
            query["equipment_id"] = parse_object_id(equipment_id, "equipment")
        if status is not None:
            query["status"] = MaintenanceOrderStatus(status).value

        docs = await self.collection.find(query).sort(
            [("opened_at", -1), ("created_at", -1)]
        ).to_list(length=None)

        return [serialize_maintenance_order(doc) for doc in docs]

    async def get_maintenance_order(self, organization_id: str, order_id: str) -> MaintenanceOrderOut:
        org_id = parse_object_id(organization_id, "organization")
        doc = await self._find(org_id, parse_object_id(order_id, "maintenance order"))
        return serialize_maintenance_order(doc)

    # ========================================================================
    # WRITE
    # ========================================================================

    async def create_maintenance_order(
        self,
        organization_id: str,
        data: MaintenanceOrderCreate,
    ) -> MaintenanceOrderOut:
        """Open an order; the equipment goes into maintenance whatever its status was"""
        org_id = parse_object_id(organization_id, "organization")
        eq_id = parse_object_id(data.equipment_id, "equipment")

        if not await self.state.load(org_id, eq_id):
            raise NotFoundError("Equipment not found for this organization")

        now = utcnow()
        doc = {
            "_id": ObjectId(),
            "organization_id": org_id,
            "equipment_id": eq_id,
            "type": data.type.value,
            "status": MaintenanceOrderStatus.OPEN.value,
            "opened_at": as_utc(data.opened_at) or now,
            "closed_at": None,
            "description": data.description,
            "next_due_at": as_utc(data.next_due_at),
            "created_at": now,
            "updated_at": now,
            "is_deleted": False,
        }

        await self.collection.insert_one(doc)
        try:
            await self._enter_maintenance(org_id, eq_id)
        except (EquipmentStateConflictError, PyMongoError):
            logger.error("Equipment %s could not enter maintenance, withdrawing order %s", eq_id, doc["_id"])
            withdrawn_at = utcnow()
            await self.collection.update_one(
                {"_id": doc["_id"]},
                {"$set": {"is_deleted": True, "deleted_at": withdrawn_at, "updated_at": withdrawn_at}},
            )
            raise

        logger.info("Maintenance order %s opened for equipment %s", doc["_id"], eq_id)
        return serialize_maintenance_order(doc)

    async def update_maintenance_order(
        self,
        organization_id: str,
        order_id: str,
        data: MaintenanceOrderUpdate,
    ) -> MaintenanceOrderOut:
        org_id = parse_object_id(organization_id, "organization")
        order_oid = parse_object_id(order_id, "maintenance order")
        patch = data.model_dump(exclude_unset=True)

        existing = await self._find(org_id, order_oid)

        update: Dict[str, Any] = {"updated_at": utcnow()}

        if patch.get("type") is not None:
            update["type"] = patch["type"].value

        if "description" in patch:
            update["description"] = patch["description"]

        if "opened_at" in patch:
            update["opened_at"] = as_utc(patch["opened_at"]) or existing["opened_at"]

        if "closed_at" in patch:
            update["closed_at"] = as_utc(patch["closed_at"])

        if "next_due_at" in patch:
            update["next_due_at"] = as_utc(patch["next_due_at"])

        new_status: Optional[MaintenanceOrderStatus] = patch.get("status")
        if new_status is not None:
            current = MaintenanceOrderStatus(existing["status"])
            if not can_transition(current, new_status):
                raise InvalidStatusTransitionError(current.value, new_status.value)

            update["status"] = new_status.value

            if new_status in PENDING_STATUSES:
                # A pending order is never closed, whatever closed_at was sent
                update["closed_at"] = None
            elif update.get("closed_at") is None:
                update["closed_at"] = existing.get("closed_at") or update["updated_at"]

        query = scoped(org_id, order_oid)
        if new_status is not None:
            # The transition was checked against this status only
            query["status"] = existing["status"]

        result = await self.collection.find_one_and_update(
            query,
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            if new_status is not None and await self.collection.find_one(scoped(org_id, order_oid)):
                raise ConflictError("Maintenance order status changed concurrently, please retry")
            raise NotFoundError("Maintenance order not found")

        if new_status in SETTLED_STATUSES:
            await self._restore_equipment_status(org_id, existing["equipment_id"])

        return serialize_maintenance_order(result)

    async def soft_delete_maintenance_order(self, organization_id: str, order_id: str) -> None:
        org_id = parse_object_id(organization_id, "organization")
        order_oid = parse_object_id(order_id, "maintenance order")
        now = utcnow()

        existing = await self._find(org_id, order_oid)

        result = await self.collection.find_one_and_update(
            scoped(org_id, order_oid),
            {"$set": {"is_deleted": True, "deleted_at": now, "updated_at": now}},
        )
        if not result:
            raise NotFoundError("Maintenance order not found")

        if existing["status"] in {s.value for s in PENDING_STATUSES}:
            await self._restore_equipment_status(org_id, existing["equipment_id"])

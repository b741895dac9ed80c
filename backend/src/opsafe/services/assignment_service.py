"""
Assignment Service
Records equipment custody events and pushes the equipment's location and
status forward to match
"""
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from bson import ObjectId
import logging

from opsafe.core.config import settings
from opsafe.core.exceptions import ConflictError, NotFoundError
from opsafe.db.mongo import Collections
from opsafe.models.assignment import (
    AssignmentAction, AssignmentCreate, AssignmentOut, AssignmentUpdate, serialize_assignment
)
from opsafe.models.common import LocationIn, stock_location
from opsafe.models.equipment import EquipmentStatus
from opsafe.services.base import as_utc, parse_object_id, scoped, utcnow
from opsafe.services.equipment_state import (
    EquipmentStateWriter, StateWrite, StatusTrigger, derive_status, trigger_for_action
)

logger = logging.getLogger(__name__)


class AssignmentService:
    """Assignment business logic"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.state = EquipmentStateWriter(db)

    @property
    def collection(self):
        return self.db[Collections.ASSIGNMENTS]

    def _build_location(self, location: LocationIn) -> Dict[str, Any]:
        return {
            "type": location.type.value,
            "ref_id": parse_object_id(location.ref_id, "location ref") if location.ref_id else None,
        }

    async def _find(self, org_id: ObjectId, assignment_id: ObjectId) -> Dict[str, Any]:
        doc = await self.collection.find_one(scoped(org_id, assignment_id))
        if not doc:
            raise NotFoundError("Assignment not found")
        return doc

    # ========================================================================
    # READ
    # ========================================================================

    async def list_assignments(
        self,
        organization_id: str,
        equipment_id: Optional[str] = None,
    ) -> List[AssignmentOut]:
        org_id = parse_object_id(organization_id, "organization")

        query = scoped(org_id)
        if equipment_id:
            query["equipment_id"] = parse_object_id(equipment_id, "equipment")

        docs = await self.collection.find(query).sort(
            [("effective_at", -1), ("created_at", -1)]
        ).to_list(length=None)

        return [serialize_assignment(doc) for doc in docs]

    async def get_assignment(self, organization_id: str, assignment_id: str) -> AssignmentOut:
        org_id = parse_object_id(organization_id, "organization")
        doc = await self._find(org_id, parse_object_id(assignment_id, "assignment"))
        return serialize_assignment(doc)

    # ========================================================================
    # CREATE
    # ========================================================================

    async def create_assignment(self, organization_id: str, data: AssignmentCreate) -> AssignmentOut:
        """
        Record a checkout / checkin / transfer.

        The equipment is written first, guarded by its version, so the
        assignment's from_location/from_status are those of the exact state
        it replaced. If the insert then fails the equipment write is undone.
        """
        org_id = parse_object_id(organization_id, "organization")
        eq_id = parse_object_id(data.equipment_id, "equipment")
        to_location = self._build_location(data.to_location)
        action = AssignmentAction(data.action)

        async def move_equipment(equipment: Dict[str, Any]) -> Dict[str, Any]:
            if (
                settings.REJECT_CHECKOUT_IN_MAINTENANCE
                and action == AssignmentAction.CHECKOUT
                and equipment["status"] == EquipmentStatus.IN_MAINTENANCE.value
            ):
                raise ConflictError("Equipment is in maintenance and cannot be checked out")

            new_status = derive_status(equipment["status"], trigger_for_action(action))
            return {"current_location": to_location, "status": new_status.value}

        write = await self.state.apply(org_id, eq_id, move_equipment)
        before = write.before

        now = utcnow()
        doc = {
            "_id": ObjectId(),
            "organization_id": org_id,
            "equipment_id": eq_id,
            "from_location": before.get("current_location") or stock_location(),
            "to_location": to_location,
            "from_status": before["status"],
            "to_status": write.after["status"],
            "action": action.value,
            "effective_at": as_utc(data.effective_at) or now,
            "notes": data.notes,
            "created_at": now,
            "updated_at": now,
            "is_deleted": False,
        }

        try:
            await self.collection.insert_one(doc)
        except PyMongoError:
            logger.error("Assignment insert failed for equipment %s, undoing equipment write", eq_id)
            await self._undo_equipment_write(write)
            raise

        logger.info(
            "Equipment %s %s: %s -> %s (%s -> %s)",
            eq_id, action.value,
            doc["from_location"]["type"], to_location["type"],
            doc["from_status"], doc["to_status"],
        )
        return serialize_assignment(doc)

    async def _undo_equipment_write(self, write: StateWrite) -> None:
        restored = await self.state.compare_and_set(
            write.after,
            {
                "current_location": write.before.get("current_location") or stock_location(),
                "status": write.before["status"],
            },
        )
        if restored is None:
            logger.error(
                "Equipment %s was modified before its state could be restored; "
                "equipment state and assignment log have diverged",
                write.after["_id"],
            )

    # ========================================================================
    # UPDATE / DELETE
    # ========================================================================

    async def update_assignment(
        self,
        organization_id: str,
        assignment_id: str,
        data: AssignmentUpdate,
    ) -> AssignmentOut:
        org_id = parse_object_id(organization_id, "organization")
        assignment_oid = parse_object_id(assignment_id, "assignment")
        patch = data.model_dump(exclude_unset=True)

        existing = await self._find(org_id, assignment_oid)

        update: Dict[str, Any] = {"updated_at": utcnow()}

        if "effective_at" in patch:
            update["effective_at"] = as_utc(patch["effective_at"]) or existing["effective_at"]

        if "notes" in patch:
            update["notes"] = patch["notes"]

        result = await self.collection.find_one_and_update(
            scoped(org_id, assignment_oid),
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            raise NotFoundError("Assignment not found")

        return serialize_assignment(result)

    async def soft_delete_assignment(
        self,
        organization_id: str,
        assignment_id: str,
        revert_equipment: bool = False,
    ) -> None:
        """
        Soft delete an assignment.

        The equipment keeps the state the assignment gave it unless
        `revert_equipment` is set, which is only allowed for the equipment's
        most recent assignment. The equipment is reverted before the
        assignment is marked deleted, so a failed revert leaves both as they were.
        """
        org_id = parse_object_id(organization_id, "organization")
        assignment_oid = parse_object_id(assignment_id, "assignment")

        existing = await self._find(org_id, assignment_oid)

        if revert_equipment:
            await self._revert_equipment(org_id, existing)

        now = utcnow()
        result = await self.collection.find_one_and_update(
            scoped(org_id, assignment_oid),
            {"$set": {"is_deleted": True, "deleted_at": now, "updated_at": now}},
        )
        if not result:
            raise NotFoundError("Assignment not found")

    async def _ensure_latest(self, org_id: ObjectId, assignment: Dict[str, Any]) -> None:
        latest = await self.collection.find_one(
            scoped(org_id, equipment_id=assignment["equipment_id"]),
            sort=[("created_at", -1), ("_id", -1)],
        )
        if latest is None or latest["_id"] != assignment["_id"]:
            raise ConflictError("Only the most recent assignment of an equipment can be reverted")

    async def _revert_equipment(self, org_id: ObjectId, assignment: Dict[str, Any]) -> None:
        async def restore(equipment: Dict[str, Any]) -> Dict[str, Any]:
            # Checked against every fresh read of the equipment
            await self._ensure_latest(org_id, assignment)
            status = derive_status(
                equipment["status"],
                StatusTrigger.ASSIGNMENT_REVERTED,
                previous=assignment.get("from_status"),
            )
            return {
                "current_location": assignment.get("from_location") or stock_location(),
                "status": status.value,
            }

        await self._ensure_latest(org_id, assignment)
        write = await self.state.apply(org_id, assignment["equipment_id"], restore, missing_ok=True)
        if write is not None:
            logger.info(
                "Equipment %s reverted to %s / %s after deleting assignment %s",
                assignment["equipment_id"],
                write.after["current_location"]["type"], write.after["status"],
                assignment["_id"],
            )

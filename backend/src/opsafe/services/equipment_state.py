"""
Equipment State
Status derivation and versioned writes of the equipment's derived state

Equipment `status` and `current_location` are written by two independent
paths: assignments push custody forward, maintenance orders pull the status
into and out of maintenance. Both paths derive the next status through
`derive_status` and write it through `EquipmentStateWriter`, which only
succeeds against the exact `version` it read.
"""
from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional
from enum import Enum
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from bson import ObjectId
import logging

from opsafe.core.config import settings
from opsafe.core.exceptions import EquipmentStateConflictError, NotFoundError
from opsafe.db.mongo import Collections
from opsafe.models.assignment import AssignmentAction
from opsafe.models.equipment import EquipmentStatus
from opsafe.services.base import scoped, utcnow

logger = logging.getLogger(__name__)


class StatusTrigger(str, Enum):
    """Events that move an equipment's status"""
    CHECKOUT = "checkout"
    CHECKIN = "checkin"
    TRANSFER = "transfer"
    MAINTENANCE_OPENED = "maintenance_opened"
    MAINTENANCE_SETTLED = "maintenance_settled"
    ASSIGNMENT_REVERTED = "assignment_reverted"


def trigger_for_action(action: AssignmentAction) -> StatusTrigger:
    return StatusTrigger(AssignmentAction(action).value)


def derive_status(
    current: EquipmentStatus,
    trigger: StatusTrigger,
    pending_orders: int = 0,
    previous: Optional[EquipmentStatus] = None,
) -> EquipmentStatus:
    """
    Next status of an equipment.

    - checkout -> inuse, checkin -> available, transfer keeps the status.
    - opening a maintenance order -> inmaintenance, whatever the status was.
    - settling (closing, cancelling, deleting) an order -> available, but only
      when the equipment is inmaintenance and `pending_orders` is zero.
    - reverting an assignment -> `previous`, unless the equipment is
      inmaintenance, which only settled orders clear.
    """
    current = EquipmentStatus(current)
    trigger = StatusTrigger(trigger)

    if trigger == StatusTrigger.CHECKOUT:
        return EquipmentStatus.IN_USE
    if trigger == StatusTrigger.CHECKIN:
        return EquipmentStatus.AVAILABLE
    if trigger == StatusTrigger.TRANSFER:
        return current
    if trigger == StatusTrigger.MAINTENANCE_OPENED:
        return EquipmentStatus.IN_MAINTENANCE
    if trigger == StatusTrigger.MAINTENANCE_SETTLED:
        if current == EquipmentStatus.IN_MAINTENANCE and pending_orders == 0:
            return EquipmentStatus.AVAILABLE
        return current

    # ASSIGNMENT_REVERTED
    if current == EquipmentStatus.IN_MAINTENANCE or previous is None:
        return current
    return EquipmentStatus(previous)


ChangeBuilder = Callable[[Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]


class StateWrite(NamedTuple):
    before: Dict[str, Any]
    after: Dict[str, Any]


class EquipmentStateWriter:
    """Compare-and-swap writer for equipment status and location"""

    def __init__(self, db: AsyncIOMotorDatabase, max_attempts: Optional[int] = None):
        self.db = db
        if max_attempts is None:
            max_attempts = settings.EQUIPMENT_WRITE_RETRIES
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts

    @property
    def collection(self):
        return self.db[Collections.EQUIPMENTS]

    async def load(self, organization_id: ObjectId, equipment_id: ObjectId) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one(scoped(organization_id, equipment_id))

    async def compare_and_set(
        self,
        equipment: Dict[str, Any],
        changes: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Apply `changes` if the stored equipment still has the version of
        `equipment`. Returns the updated document, or None if it moved on.
        """
        query = scoped(equipment["organization_id"], equipment["_id"])
        if "version" in equipment:
            query["version"] = equipment["version"]
        else:
            query["version"] = {"$exists": False}

        return await self.collection.find_one_and_update(
            query,
            {
                "$set": {
                    **changes,
                    "version": equipment.get("version", 0) + 1,
                    "updated_at": utcnow(),
                }
            },
            return_document=ReturnDocument.AFTER,
        )

    async def apply(
        self,
        organization_id: ObjectId,
        equipment_id: ObjectId,
        build_changes: ChangeBuilder,
        missing_ok: bool = False,
    ) -> Optional[StateWrite]:
        """
        Read the equipment, ask `build_changes` what to set and write it.

        `build_changes` is called again with a fresh read whenever another
        writer got there first. Returning None or {} means nothing to write.
        """
        for attempt in range(1, self.max_attempts + 1):
            equipment = await self.load(organization_id, equipment_id)
            if equipment is None:
                if missing_ok:
                    return None
                raise NotFoundError("Equipment not found for this organization")

            changes = await build_changes(equipment)
            if not changes:
                return StateWrite(equipment, equipment)

            updated = await self.compare_and_set(equipment, changes)
            if updated is not None:
                logger.debug(
                    "Equipment %s state written (version %s): %s",
                    equipment_id, updated.get("version"), changes,
                )
                return StateWrite(equipment, updated)

            logger.warning(
                "Equipment %s changed during state write (attempt %d/%d), retrying",
                equipment_id, attempt, self.max_attempts,
            )

        raise EquipmentStateConflictError(
            "Equipment is being modified concurrently, please retry"
        )

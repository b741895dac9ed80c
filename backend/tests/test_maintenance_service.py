from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId

from opsafe.core.exceptions import (
    ConflictError, EquipmentStateConflictError, InvalidIdentifierError,
    InvalidStatusTransitionError, NotFoundError,
)
from opsafe.db.mongo import Collections
from opsafe.models.maintenance import MaintenanceOrderUpdate

from service_case import ServiceTestCase


class MaintenanceOrderTest(ServiceTestCase):

    async def set_status(self, order_id, status, **extra):
        return await self.maintenance.update_maintenance_order(
            self.org_id, order_id, MaintenanceOrderUpdate(status=status, **extra)
        )

    async def equipment_status(self, equipment_id):
        return (await self.equipment_doc(equipment_id))['status']

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    async def test_open_order_puts_equipment_in_maintenance(self):
        equipment = await self.create_equipment()

        order = await self.open_order(equipment.id, 'preventive', description='Annual inspection')

        assert order.status == 'open'
        assert order.closed_at is None
        assert order.type == 'preventive'
        assert order.equipment_id == equipment.id
        assert await self.equipment_status(equipment.id) == 'inmaintenance'

    async def test_open_order_overrides_decommissioned(self):
        equipment = await self.create_equipment(status='decommissioned')

        await self.open_order(equipment.id)

        assert await self.equipment_status(equipment.id) == 'inmaintenance'

    async def test_open_order_overrides_in_use(self):
        equipment = await self.create_equipment()
        await self.assign(equipment.id, 'checkout')

        await self.open_order(equipment.id)

        assert await self.equipment_status(equipment.id) == 'inmaintenance'

    async def test_open_order_on_unknown_equipment(self):
        with pytest.raises(NotFoundError):
            await self.open_order(str(ObjectId()))
        with pytest.raises(InvalidIdentifierError, match='Invalid equipment id'):
            await self.open_order('bad')
        assert await self.db[Collections.MAINTENANCE_ORDERS].count_documents({}) == 0

    async def test_open_order_on_deleted_equipment(self):
        equipment = await self.create_equipment()
        await self.equipments.soft_delete_equipment(self.org_id, equipment.id)

        with pytest.raises(NotFoundError):
            await self.open_order(equipment.id)

    # ------------------------------------------------------------------
    # restoration
    # ------------------------------------------------------------------

    async def test_equipment_available_only_after_last_order_closes(self):
        equipment = await self.create_equipment()
        first = await self.open_order(equipment.id)
        second = await self.open_order(equipment.id)
        assert await self.equipment_status(equipment.id) == 'inmaintenance'

        await self.set_status(first.id, 'closed')
        assert await self.equipment_status(equipment.id) == 'inmaintenance'

        await self.set_status(second.id, 'closed')
        assert await self.equipment_status(equipment.id) == 'available'

    async def test_in_progress_order_keeps_equipment_in_maintenance(self):
        equipment = await self.create_equipment()
        first = await self.open_order(equipment.id)
        second = await self.open_order(equipment.id)
        await self.set_status(second.id, 'inprogress')

        await self.set_status(first.id, 'cancelled')

        assert await self.equipment_status(equipment.id) == 'inmaintenance'

    async def test_cancel_last_order(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)

        await self.set_status(order.id, 'cancelled')

        assert await self.equipment_status(equipment.id) == 'available'

    async def test_restoration_is_always_to_available(self):
        equipment = await self.create_equipment()
        await self.assign(equipment.id, 'checkout')
        order = await self.open_order(equipment.id)

        await self.set_status(order.id, 'closed')

        assert await self.equipment_status(equipment.id) == 'available'

    async def test_close_leaves_equipment_moved_by_assignment(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)
        await self.assign(equipment.id, 'checkout')

        await self.set_status(order.id, 'closed')

        assert await self.equipment_status(equipment.id) == 'inuse'

    async def test_restoration_ignores_other_equipment_orders(self):
        equipment = await self.create_equipment()
        other = await self.create_equipment()
        order = await self.open_order(equipment.id)
        await self.open_order(other.id)

        await self.set_status(order.id, 'closed')

        assert await self.equipment_status(equipment.id) == 'available'
        assert await self.equipment_status(other.id) == 'inmaintenance'

    async def test_delete_pending_order_restores_equipment(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)

        await self.maintenance.soft_delete_maintenance_order(self.org_id, order.id)

        assert await self.equipment_status(equipment.id) == 'available'
        with pytest.raises(NotFoundError):
            await self.maintenance.get_maintenance_order(self.org_id, order.id)

    async def test_delete_with_other_orders_pending(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)
        await self.open_order(equipment.id)

        await self.maintenance.soft_delete_maintenance_order(self.org_id, order.id)

        assert await self.equipment_status(equipment.id) == 'inmaintenance'

    async def test_delete_closed_order_does_not_touch_equipment(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)
        await self.set_status(order.id, 'closed')
        await self.assign(equipment.id, 'checkout')
        version = (await self.equipment_doc(equipment.id))['version']

        await self.maintenance.soft_delete_maintenance_order(self.org_id, order.id)

        doc = await self.equipment_doc(equipment.id)
        assert doc['status'] == 'inuse'
        assert doc['version'] == version

    async def test_restoration_skips_deleted_equipment(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)
        await self.equipments.soft_delete_equipment(self.org_id, equipment.id)

        closed = await self.set_status(order.id, 'closed')

        assert closed.status == 'closed'
        assert await self.equipment_status(equipment.id) == 'inmaintenance'

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    async def test_reopening_clears_closed_at_even_when_given(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)
        await self.set_status(order.id, 'inprogress')

        updated = await self.set_status(
            order.id, 'open', closed_at=datetime(2025, 6, 1, tzinfo=timezone.utc)
        )

        assert updated.status == 'open'
        assert updated.closed_at is None

    async def test_in_progress_clears_closed_at(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)

        updated = await self.set_status(
            order.id, 'inprogress', closed_at=datetime(2025, 6, 1, tzinfo=timezone.utc)
        )

        assert updated.closed_at is None

    async def test_closing_stamps_closed_at(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)

        updated = await self.set_status(order.id, 'closed')

        assert updated.closed_at is not None

    async def test_closing_keeps_given_closed_at(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)
        closed_at = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

        updated = await self.set_status(order.id, 'closed', closed_at=closed_at)

        assert updated.closed_at.replace(tzinfo=None) == closed_at.replace(tzinfo=None)

    async def test_terminal_status_cannot_be_reopened(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)
        await self.set_status(order.id, 'closed')

        with pytest.raises(InvalidStatusTransitionError):
            await self.set_status(order.id, 'open', description='reopen')

        stored = await self.maintenance.get_maintenance_order(self.org_id, order.id)
        assert stored.status == 'closed'
        assert stored.description is None
        assert await self.equipment_status(equipment.id) == 'available'

    async def test_update_other_fields(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id, 'preventive', description='Check')
        next_due = datetime(2026, 1, 15, tzinfo=timezone.utc)

        updated = await self.maintenance.update_maintenance_order(
            self.org_id, order.id,
            MaintenanceOrderUpdate(type='corrective', description='Replace battery', next_due_at=next_due),
        )

        assert updated.type == 'corrective'
        assert updated.description == 'Replace battery'
        assert updated.next_due_at.replace(tzinfo=None) == next_due.replace(tzinfo=None)
        assert updated.status == 'open'
        assert await self.equipment_status(equipment.id) == 'inmaintenance'

    async def test_null_opened_at_keeps_stored_value(self):
        equipment = await self.create_equipment()
        opened = datetime(2025, 4, 2, tzinfo=timezone.utc)
        order = await self.open_order(equipment.id, opened_at=opened)

        updated = await self.maintenance.update_maintenance_order(
            self.org_id, order.id, MaintenanceOrderUpdate(opened_at=None, next_due_at=None)
        )

        assert updated.opened_at.replace(tzinfo=None) == opened.replace(tzinfo=None)
        assert updated.next_due_at is None

    async def test_update_missing_order(self):
        with pytest.raises(NotFoundError):
            await self.set_status(str(ObjectId()), 'closed')
        with pytest.raises(InvalidIdentifierError, match='Invalid maintenance order id'):
            await self.set_status('1234', 'closed')

    # ------------------------------------------------------------------
    # read
    # ------------------------------------------------------------------

    async def test_list_filters(self):
        equipment = await self.create_equipment()
        other = await self.create_equipment()
        older = await self.open_order(equipment.id, opened_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
        newer = await self.open_order(equipment.id, opened_at=datetime(2025, 3, 1, tzinfo=timezone.utc))
        await self.open_order(other.id)
        await self.set_status(older.id, 'closed')

        by_equipment = await self.maintenance.list_maintenance_orders(self.org_id, equipment_id=equipment.id)
        closed = await self.maintenance.list_maintenance_orders(self.org_id, status='closed')

        assert [o.id for o in by_equipment] == [newer.id, older.id]
        assert [o.id for o in closed] == [older.id]

    async def test_list_excludes_other_organizations(self):
        equipment = await self.create_equipment()
        await self.open_order(equipment.id)

        assert await self.maintenance.list_maintenance_orders(str(ObjectId())) == []

    # ------------------------------------------------------------------
    # concurrent writers
    # ------------------------------------------------------------------

    async def test_opening_order_bumps_version_of_equipment_in_maintenance(self):
        equipment = await self.create_equipment()
        await self.open_order(equipment.id)
        version = (await self.equipment_doc(equipment.id))['version']

        await self.open_order(equipment.id)

        assert (await self.equipment_doc(equipment.id))['version'] == version + 1

    async def test_restoration_recounts_when_order_opened_meanwhile(self):
        equipment = await self.create_equipment()
        first = await self.open_order(equipment.id)
        count_pending = self.maintenance.count_pending_orders
        opened = []

        async def count_then_open(org_id, equipment_id):
            pending = await count_pending(org_id, equipment_id)
            if not opened:
                # Another request opens an order right after the count
                opened.append(await self.open_order(equipment.id))
            return pending

        self.maintenance.count_pending_orders = count_then_open

        await self.set_status(first.id, 'closed')

        assert await self.equipment_status(equipment.id) == 'inmaintenance'
        still_open = await self.maintenance.list_maintenance_orders(self.org_id, status='open')
        assert [o.id for o in still_open] == [opened[0].id]

    async def test_status_change_checked_against_stored_status(self):
        equipment = await self.create_equipment()
        order = await self.open_order(equipment.id)
        read_before_close = await self.db[Collections.MAINTENANCE_ORDERS].find_one(
            {'_id': ObjectId(order.id)}
        )
        await self.set_status(order.id, 'closed')

        with patch.object(self.maintenance, '_find', AsyncMock(return_value=read_before_close)):
            with pytest.raises(ConflictError) as excinfo:
                await self.set_status(order.id, 'open')

        assert not isinstance(excinfo.value, InvalidStatusTransitionError)

        stored = await self.maintenance.get_maintenance_order(self.org_id, order.id)
        assert stored.status == 'closed'
        assert await self.equipment_status(equipment.id) == 'available'

    async def test_order_withdrawn_when_equipment_cannot_enter_maintenance(self):
        equipment = await self.create_equipment()
        busy = AsyncMock(side_effect=EquipmentStateConflictError('busy'))

        with patch.object(self.maintenance.state, 'apply', busy):
            with pytest.raises(EquipmentStateConflictError):
                await self.open_order(equipment.id)

        assert await self.maintenance.list_maintenance_orders(self.org_id) == []
        assert await self.maintenance.count_pending_orders(
            ObjectId(self.org_id), ObjectId(equipment.id)
        ) == 0
        assert await self.equipment_status(equipment.id) == 'available'

"""
Module: inventory_kernel.selectors.inventory_selector
Responsibility: Read-only queries over inventory levels: levels of a
    location or product, low-stock levels, and the last count time of a
    location.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.  MUST NOT import from services/.
"""

from datetime import datetime

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import InventoryLevelRecord
from inventory_kernel.models.inventory_level import InventoryLevelModel
from inventory_kernel.selectors.base import BaseSelector

_L = InventoryLevelModel


class InventorySelector(BaseSelector[InventoryLevelModel]):

    def levels(
        self,
        tenant_id: str,
        location_id: str | None = None,
        product_id: str | None = None,
        include_inactive: bool = False,
    ) -> list[InventoryLevelRecord]:
        stmt = select(_L).where(_L.tenant_id == tenant_id)
        if location_id is not None:
            stmt = stmt.where(_L.location_id == location_id)
        if product_id is not None:
            stmt = stmt.where(_L.product_id == product_id)
        if not include_inactive:
            stmt = stmt.where(_L.is_active.is_(True))
        stmt = stmt.order_by(_L.location_id, _L.product_id, _L.variant_id)
        return [InventoryLevelRecord.from_model(m) for m in self.session.scalars(stmt)]

    def low_stock(
        self, tenant_id: str, location_id: str | None = None
    ) -> list[InventoryLevelRecord]:
        """Active levels at or below their reorder point."""
        stmt = select(_L).where(
            _L.tenant_id == tenant_id,
            _L.is_active.is_(True),
            _L.current_level <= _L.reorder_point,
        )
        if location_id is not None:
            stmt = stmt.where(_L.location_id == location_id)
        stmt = stmt.order_by(_L.location_id, _L.product_id, _L.variant_id)
        return [InventoryLevelRecord.from_model(m) for m in self.session.scalars(stmt)]

    def last_count_at(self, tenant_id: str, location_id: str) -> datetime | None:
        return self.session.scalar(
            select(func.max(_L.last_count_at)).where(
                _L.tenant_id == tenant_id,
                _L.location_id == location_id,
            )
        )

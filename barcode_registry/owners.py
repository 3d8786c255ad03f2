from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .barcodes import OwnerRef
from .models import OWNER_MODELS, BarcodeItem, CanonicalItem, Item, Organization

LOGGER = logging.getLogger(__name__)


class OwnerRegistry:
    """Access to the entities barcodes hang off (Item and CanonicalItem)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def resolve_owner(self, ref: OwnerRef | None) -> Item | CanonicalItem | None:
        if ref is None or ref.id is None:
            return None
        model = OWNER_MODELS.get(ref.kind)
        if model is None:
            return None
        return await self.session.get(model, ref.id)

    async def organization_exists(self, organization_id) -> bool:
        if organization_id is None:
            return False
        return await self.session.get(Organization, organization_id) is not None

    async def partner_key_of(self, ref: OwnerRef) -> str | None:
        model = OWNER_MODELS[ref.kind]
        result = await self.session.execute(select(model.partner_key).where(model.id == ref.id))
        return result.scalar_one_or_none()

    async def increment_barcode_count(self, ref: OwnerRef) -> None:
        # single UPDATE so concurrent inserts against one owner are each counted
        model = OWNER_MODELS[ref.kind]
        result = await self.session.execute(
            update(model)
            .where(model.id == ref.id)
            .values(barcode_count=model.barcode_count + 1, updated_at=datetime.utcnow())
        )
        if result.rowcount == 0:
            LOGGER.warning("Owner %s:%s vanished before its barcode count was incremented", ref.kind.value, ref.id)

    async def count_barcodes(self, ref: OwnerRef) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(BarcodeItem)
            .where(BarcodeItem.owner_kind == ref.kind, BarcodeItem.owner_id == ref.id)
        )
        return int(result.scalar_one())

    async def set_barcode_count(self, ref: OwnerRef, count: int) -> None:
        model = OWNER_MODELS[ref.kind]
        await self.session.execute(
            update(model)
            .where(model.id == ref.id)
            .values(barcode_count=count, updated_at=datetime.utcnow())
        )

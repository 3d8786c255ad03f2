from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .barcodes import (
    BarcodeCandidate,
    BarcodeValidationError,
    ErrorCode,
    OwnerKind,
    OwnerRef,
    StoreUnavailable,
    ValidationIssue,
    normalize_value,
)
from .counters import CounterSynchronizer
from .deps import store_guard
from .models import BarcodeItem, CanonicalItem, Item
from .owners import OwnerRegistry
from .validation import DUPLICATE_VALUE_MESSAGE, coerce_quantity, validate

LOGGER = logging.getLogger(__name__)


class BarcodeStore:
    """Persistent collection of barcode records plus the scoped queries over it."""

    def __init__(
        self,
        session: AsyncSession,
        owners: OwnerRegistry | None = None,
        counters: CounterSynchronizer | None = None,
    ) -> None:
        self.session = session
        self.owners = owners or OwnerRegistry(session)
        self.counters = counters or CounterSynchronizer(session, self.owners)

    async def insert(self, candidate: BarcodeCandidate) -> BarcodeItem:
        async with store_guard("barcode validation"):
            issues = await validate(self.session, candidate, self.owners)
        if issues:
            LOGGER.warning(
                "Rejected barcode %r: %s", candidate.value, ", ".join(i.code.value for i in issues)
            )
            raise BarcodeValidationError(issues)

        quantity, _ = coerce_quantity(candidate.quantity)
        now = datetime.utcnow()
        record = BarcodeItem(
            id=uuid.uuid4(),
            value=candidate.value,
            quantity=quantity,
            owner_kind=candidate.owner.kind,
            owner_id=candidate.owner.id,
            organization_id=None if candidate.is_global else candidate.organization_id,
            is_global=candidate.is_global,
            created_at=now,
            updated_at=now,
        )
        self.session.add(record)
        try:
            async with store_guard("barcode registration"):
                await self.session.commit()
        except IntegrityError as exc:
            # lost a race with a concurrent registration in the same domain
            await self.session.rollback()
            LOGGER.warning("Rejected barcode %r at commit: %s", candidate.value, exc.orig)
            raise BarcodeValidationError(
                [ValidationIssue(ErrorCode.DUPLICATE_VALUE, "value", DUPLICATE_VALUE_MESSAGE)]
            ) from exc
        except StoreUnavailable:
            # the commit may have landed; recount the owner once the store is back
            await self.counters.defer(candidate.owner)
            raise

        LOGGER.info(
            "Registered %s barcode %r for %s:%s",
            "global" if record.is_global else f"org {record.organization_id}",
            record.value,
            record.owner_kind.value,
            record.owner_id,
        )
        await self.counters.on_record_inserted(record)
        return record

    async def _all(self, stmt: Select, action: str) -> list[BarcodeItem]:
        async with store_guard(action):
            result = await self.session.execute(stmt.order_by(BarcodeItem.created_at.asc()))
            return list(result.scalars().all())

    async def find_by_owner(self, ref: OwnerRef) -> list[BarcodeItem]:
        stmt = select(BarcodeItem).where(BarcodeItem.owner_kind == ref.kind, BarcodeItem.owner_id == ref.id)
        return await self._all(stmt, "owner lookup")

    async def find_by_value(self, value: str) -> list[BarcodeItem]:
        stmt = select(BarcodeItem).where(BarcodeItem.value == normalize_value(value))
        return await self._all(stmt, "value lookup")

    async def find_by_value_global_only(self, value: str) -> list[BarcodeItem]:
        stmt = select(BarcodeItem).where(
            BarcodeItem.value == normalize_value(value),
            BarcodeItem.organization_id.is_(None),
        )
        return await self._all(stmt, "global value lookup")

    async def find_by_value_in_organization(self, value: str, organization_id: uuid.UUID) -> list[BarcodeItem]:
        stmt = select(BarcodeItem).where(
            BarcodeItem.value == normalize_value(value),
            BarcodeItem.organization_id == organization_id,
        )
        return await self._all(stmt, "organization value lookup")

    async def find_by_value_including_global(self, organization_id: uuid.UUID, value: str) -> list[BarcodeItem]:
        stmt = select(BarcodeItem).where(
            BarcodeItem.value == normalize_value(value),
            or_(BarcodeItem.organization_id == organization_id, BarcodeItem.organization_id.is_(None)),
        )
        return await self._all(stmt, "scoped value lookup")

    async def list_for_organization(self, organization_id: uuid.UUID, include_global: bool = False) -> list[BarcodeItem]:
        scope = BarcodeItem.organization_id == organization_id
        if include_global:
            scope = or_(scope, BarcodeItem.organization_id.is_(None))
        return await self._all(select(BarcodeItem).where(scope), "organization listing")

    async def list_by_canonical_partner_key(self, partner_key: str) -> list[BarcodeItem]:
        stmt = (
            select(BarcodeItem)
            .join(
                CanonicalItem,
                and_(
                    BarcodeItem.owner_kind == OwnerKind.CANONICAL_ITEM,
                    BarcodeItem.owner_id == CanonicalItem.id,
                ),
            )
            .where(CanonicalItem.partner_key == partner_key)
        )
        return await self._all(stmt, "canonical partner key listing")

    async def list_by_item_partner_key(self, partner_key: str) -> list[BarcodeItem]:
        stmt = (
            select(BarcodeItem)
            .join(Item, and_(BarcodeItem.owner_kind == OwnerKind.ITEM, BarcodeItem.owner_id == Item.id))
            .where(Item.partner_key == partner_key)
        )
        return await self._all(stmt, "item partner key listing")

    async def partner_key_for(self, record: BarcodeItem) -> str | None:
        async with store_guard("partner key lookup"):
            return await self.owners.partner_key_of(record.owner_ref)

    @staticmethod
    def to_digest(record: BarcodeItem) -> dict[str, Any]:
        return {
            "owner_id": record.owner_id,
            "owner_kind": OwnerKind(record.owner_kind).value,
            "quantity": record.quantity,
        }

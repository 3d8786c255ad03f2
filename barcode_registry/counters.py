"""Keeps ``barcode_count`` on items and canonical items in step with their barcodes.

The counters are a cached aggregate. When an increment fails after the barcode
itself was committed, the owner is queued and later recomputed from the live
barcode rows instead of undoing the registration.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .barcodes import OwnerRef, StoreUnavailable
from .deps import store_guard
from .models import BarcodeItem
from .owners import OwnerRegistry

LOGGER = logging.getLogger(__name__)


class ReconciliationQueue:
    """Owners whose counters need to be recomputed."""

    def __init__(self) -> None:
        self._pending: set[OwnerRef] = set()

    def add(self, ref: OwnerRef) -> None:
        self._pending.add(ref)

    def drain(self) -> list[OwnerRef]:
        pending, self._pending = list(self._pending), set()
        return pending

    def __contains__(self, ref: object) -> bool:
        return ref in self._pending

    def __len__(self) -> int:
        return len(self._pending)


pending_reconciliation = ReconciliationQueue()


class CounterSynchronizer:
    def __init__(
        self,
        session: AsyncSession,
        owners: OwnerRegistry | None = None,
        queue: ReconciliationQueue | None = None,
    ) -> None:
        self.session = session
        self.owners = owners or OwnerRegistry(session)
        self.queue = queue if queue is not None else pending_reconciliation

    async def on_record_inserted(self, record: BarcodeItem) -> bool:
        """Count a freshly committed barcode against its owner.

        Returns False when the increment could not be applied and the owner was
        queued for reconciliation.
        """
        ref = record.owner_ref
        try:
            async with store_guard("barcode count increment"):
                await self.owners.increment_barcode_count(ref)
                await self.session.commit()
        except (StoreUnavailable, SQLAlchemyError) as exc:
            LOGGER.warning("Could not increment barcode count for %s:%s (%s)", ref.kind.value, ref.id, exc)
            # the barcode row is already committed; keep it readable past the rollback
            if record in self.session:
                self.session.expunge(record)
            await self.defer(ref)
            return False
        return True

    async def defer(self, ref: OwnerRef) -> None:
        """Roll back the current transaction and queue ``ref`` for a recount."""
        await self._rollback()
        self.queue.add(ref)
        LOGGER.warning("Queued %s:%s for barcode count reconciliation", ref.kind.value, ref.id)

    async def reconcile(self, ref: OwnerRef) -> int:
        async with store_guard("barcode count reconciliation"):
            count = await self.owners.count_barcodes(ref)
            await self.owners.set_barcode_count(ref, count)
            await self.session.commit()
        LOGGER.info("Reconciled barcode count for %s:%s to %d", ref.kind.value, ref.id, count)
        return count

    async def reconcile_pending(self) -> int:
        done = 0
        for ref in self.queue.drain():
            try:
                await self.reconcile(ref)
            except (StoreUnavailable, SQLAlchemyError):
                LOGGER.warning("Reconciliation failed for %s:%s, requeued", ref.kind.value, ref.id)
                await self._rollback()
                self.queue.add(ref)
            else:
                done += 1
        return done

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError:
            LOGGER.exception("Rollback failed")


async def run_reconciler(
    session_factory: Callable[[], AsyncSession],
    interval_s: float,
    queue: ReconciliationQueue | None = None,
) -> None:
    LOGGER.info("Barcode count reconciler running every %.1fs", interval_s)
    while True:
        if len(queue if queue is not None else pending_reconciliation):
            try:
                async with session_factory() as session:
                    await CounterSynchronizer(session, queue=queue).reconcile_pending()
            except Exception:
                LOGGER.exception("Error while reconciling barcode counts")
        await asyncio.sleep(interval_s)

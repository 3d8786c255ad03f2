import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from .barcodes import normalize_value
from .models import BarcodeItem
from .store import BarcodeStore

LOGGER = logging.getLogger(__name__)


async def resolve_barcode(session: AsyncSession, organization_id: uuid.UUID, barcode: str) -> BarcodeItem | None:
    """Map a scan to the one barcode record the organization should act on.

    The organization's own record always wins over a global one with the same
    value. Other organizations' records are never considered. Returns None when
    nothing matches; store outages raise StoreUnavailable instead.
    """
    code = normalize_value(barcode)
    if not code:
        return None
    matches = await BarcodeStore(session).find_by_value_including_global(organization_id, code)
    local = next((m for m in matches if m.organization_id is not None), None)
    if local is not None:
        LOGGER.debug("Scan %r for org %s resolved to local barcode %s", code, organization_id, local.id)
        return local
    shared = next((m for m in matches if m.organization_id is None), None)
    if shared is not None:
        LOGGER.debug("Scan %r for org %s resolved to global barcode %s", code, organization_id, shared.id)
    else:
        LOGGER.debug("Scan %r for org %s did not match any barcode", code, organization_id)
    return shared

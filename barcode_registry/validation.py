import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .barcodes import BarcodeCandidate, ErrorCode, OwnerKind, ValidationIssue
from .models import BarcodeItem
from .owners import OwnerRegistry

_INT_LITERAL = re.compile(r"^[+-]?\d+$")

DUPLICATE_VALUE_MESSAGE = "El código de barras ya está registrado"


def coerce_quantity(raw: Any) -> tuple[int | None, ErrorCode | None]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None, ErrorCode.MISSING_QUANTITY
    if isinstance(raw, bool):
        return None, ErrorCode.INVALID_QUANTITY_TYPE
    if isinstance(raw, int):
        qty = raw
    elif isinstance(raw, float) and raw.is_integer():
        qty = int(raw)
    elif isinstance(raw, str) and _INT_LITERAL.match(raw.strip()):
        qty = int(raw.strip())
    else:
        return None, ErrorCode.INVALID_QUANTITY_TYPE
    if qty < 0:
        return qty, ErrorCode.NEGATIVE_QUANTITY
    return qty, None


_QUANTITY_MESSAGES = {
    ErrorCode.MISSING_QUANTITY: "La cantidad es obligatoria",
    ErrorCode.INVALID_QUANTITY_TYPE: "La cantidad debe ser un número entero",
    ErrorCode.NEGATIVE_QUANTITY: "La cantidad debe ser mayor o igual a 0",
}


async def value_taken(session: AsyncSession, value: str, organization_id=None) -> bool:
    """True when ``value`` already exists in the uniqueness domain of ``organization_id``.

    ``organization_id=None`` is the global domain. Local and global values never
    collide with each other.
    """
    stmt = select(BarcodeItem.id).where(BarcodeItem.value == value)
    if organization_id is None:
        stmt = stmt.where(BarcodeItem.organization_id.is_(None))
    else:
        stmt = stmt.where(BarcodeItem.organization_id == organization_id)
    result = await session.execute(stmt.limit(1))
    return result.first() is not None


async def validate(
    session: AsyncSession,
    candidate: BarcodeCandidate,
    owners: OwnerRegistry | None = None,
) -> list[ValidationIssue]:
    """Run every check against the current store state and collect all failures."""
    owners = owners or OwnerRegistry(session)
    issues: list[ValidationIssue] = []

    owner = await owners.resolve_owner(candidate.owner)
    if owner is None:
        issues.append(ValidationIssue(ErrorCode.MISSING_OWNER, "owner", "El propietario no existe"))

    if not candidate.value:
        issues.append(ValidationIssue(ErrorCode.MISSING_VALUE, "value", "El código de barras es obligatorio"))

    _, qty_error = coerce_quantity(candidate.quantity)
    if qty_error is not None:
        issues.append(ValidationIssue(qty_error, "quantity", _QUANTITY_MESSAGES[qty_error]))

    has_domain = True
    if not candidate.is_global and not await owners.organization_exists(candidate.organization_id):
        issues.append(ValidationIssue(ErrorCode.MISSING_ORGANIZATION, "organization", "La organización no existe"))
        has_domain = False

    if (
        has_domain
        and owner is not None
        and candidate.owner.kind is OwnerKind.ITEM
        and owner.organization_id != candidate.organization_id
    ):
        issues.append(
            ValidationIssue(ErrorCode.MISSING_OWNER, "owner", "El artículo no pertenece a la organización")
        )

    if candidate.value and has_domain:
        scope = None if candidate.is_global else candidate.organization_id
        if await value_taken(session, candidate.value, scope):
            issues.append(ValidationIssue(ErrorCode.DUPLICATE_VALUE, "value", DUPLICATE_VALUE_MESSAGE))

    return issues

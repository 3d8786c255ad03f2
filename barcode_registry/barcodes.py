from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Any


class OwnerKind(str, enum.Enum):
    ITEM = "Item"
    CANONICAL_ITEM = "CanonicalItem"


@dataclass(frozen=True)
class OwnerRef:
    """Tagged reference to whatever a barcode is attached to."""

    kind: OwnerKind
    id: uuid.UUID

    @property
    def is_canonical(self) -> bool:
        return self.kind is OwnerKind.CANONICAL_ITEM


class ErrorCode(str, enum.Enum):
    MISSING_OWNER = "missing_owner"
    MISSING_VALUE = "missing_value"
    MISSING_QUANTITY = "missing_quantity"
    INVALID_QUANTITY_TYPE = "invalid_quantity_type"
    NEGATIVE_QUANTITY = "negative_quantity"
    MISSING_ORGANIZATION = "missing_organization"
    DUPLICATE_VALUE = "duplicate_value"


@dataclass(frozen=True)
class ValidationIssue:
    code: ErrorCode
    field: str
    message: str


class BarcodeError(Exception):
    """Errores relacionados con códigos de barra."""


class BarcodeValidationError(BarcodeError):
    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = list(issues)
        super().__init__("; ".join(f"{i.field}: {i.message}" for i in self.issues))

    @property
    def codes(self) -> set[ErrorCode]:
        return {i.code for i in self.issues}


class StoreUnavailable(BarcodeError):
    """The backing store failed or timed out. Safe for the caller to retry."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Barcode store unavailable during {action}")


def normalize_value(raw: str | None) -> str:
    return (raw or "").strip()


@dataclass
class BarcodeCandidate:
    """A barcode registration request that has not been validated yet.

    The scope comes from the owner: a CanonicalItem owner always produces a
    global record, so any organization passed along with it is dropped.
    ``quantity`` is kept raw so validation can report type errors.
    """

    value: str | None
    quantity: Any
    owner: OwnerRef | None
    organization_id: uuid.UUID | None = None

    def __post_init__(self) -> None:
        self.value = normalize_value(self.value)
        if self.owner is not None and self.owner.is_canonical:
            self.organization_id = None

    @property
    def is_global(self) -> bool:
        if self.owner is not None:
            return self.owner.is_canonical
        return self.organization_id is None

    @classmethod
    def for_item(cls, item: Any, value: str | None, quantity: Any) -> "BarcodeCandidate":
        return cls(value, quantity, OwnerRef(OwnerKind.ITEM, item.id), item.organization_id)

    @classmethod
    def for_canonical_item(cls, canonical_item: Any, value: str | None, quantity: Any) -> "BarcodeCandidate":
        return cls(value, quantity, OwnerRef(OwnerKind.CANONICAL_ITEM, canonical_item.id))

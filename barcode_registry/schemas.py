import datetime as dt
import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .barcodes import ErrorCode, OwnerKind


class LocalBarcodeCreate(BaseModel):
    item_id: Optional[uuid.UUID] = None
    value: Optional[str] = Field(default=None, max_length=255)
    # raw input; the validation layer reports type errors
    quantity: Any = None


class GlobalBarcodeCreate(BaseModel):
    canonical_item_id: Optional[uuid.UUID] = None
    value: Optional[str] = Field(default=None, max_length=255)
    quantity: Any = None


class BarcodeItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    value: str
    quantity: int
    owner_kind: OwnerKind
    owner_id: uuid.UUID
    organization_id: uuid.UUID | None = None
    is_global: bool
    created_at: dt.datetime
    updated_at: dt.datetime


class BarcodeLookupResponse(BaseModel):
    barcode: BarcodeItemResponse
    partner_key: str | None = None


class BarcodeDigest(BaseModel):
    owner_id: uuid.UUID
    owner_kind: OwnerKind
    quantity: int


class ValidationIssueOut(BaseModel):
    code: ErrorCode
    field: str
    message: str

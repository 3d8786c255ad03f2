import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..barcode_resolver import resolve_barcode
from ..barcodes import BarcodeCandidate, BarcodeValidationError, OwnerKind, OwnerRef
from ..deps import get_session
from ..store import BarcodeStore

router = APIRouter(tags=["barcodes"])


def _validation_failed(exc: BarcodeValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=[schemas.ValidationIssueOut(code=i.code, field=i.field, message=i.message).model_dump(mode="json") for i in exc.issues],
    )


@router.post(
    "/organizations/{organization_id}/barcode_items",
    response_model=schemas.BarcodeItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_local_barcode(
    organization_id: uuid.UUID,
    payload: schemas.LocalBarcodeCreate,
    session: AsyncSession = Depends(get_session),
) -> schemas.BarcodeItemResponse:
    owner = OwnerRef(OwnerKind.ITEM, payload.item_id) if payload.item_id else None
    candidate = BarcodeCandidate(payload.value, payload.quantity, owner, organization_id)
    try:
        record = await BarcodeStore(session).insert(candidate)
    except BarcodeValidationError as exc:
        raise _validation_failed(exc) from exc
    return schemas.BarcodeItemResponse.model_validate(record)


@router.post("/barcode_items/global", response_model=schemas.BarcodeItemResponse, status_code=status.HTTP_201_CREATED)
async def register_global_barcode(
    payload: schemas.GlobalBarcodeCreate,
    session: AsyncSession = Depends(get_session),
) -> schemas.BarcodeItemResponse:
    owner = OwnerRef(OwnerKind.CANONICAL_ITEM, payload.canonical_item_id) if payload.canonical_item_id else None
    candidate = BarcodeCandidate(payload.value, payload.quantity, owner)
    try:
        record = await BarcodeStore(session).insert(candidate)
    except BarcodeValidationError as exc:
        raise _validation_failed(exc) from exc
    return schemas.BarcodeItemResponse.model_validate(record)


@router.get("/organizations/{organization_id}/barcode_items", response_model=list[schemas.BarcodeItemResponse])
async def list_organization_barcodes(
    organization_id: uuid.UUID,
    include_global: bool = False,
    session: AsyncSession = Depends(get_session),
):
    records = await BarcodeStore(session).list_for_organization(organization_id, include_global)
    return [schemas.BarcodeItemResponse.model_validate(r) for r in records]


@router.get("/organizations/{organization_id}/barcode_items/lookup", response_model=schemas.BarcodeLookupResponse)
async def lookup_barcode(
    organization_id: uuid.UUID,
    value: str = Query(min_length=1, max_length=255),
    session: AsyncSession = Depends(get_session),
) -> schemas.BarcodeLookupResponse:
    record = await resolve_barcode(session, organization_id, value)
    if record is None:
        raise HTTPException(status_code=404, detail="Código de barras no encontrado")
    partner_key = await BarcodeStore(session).partner_key_for(record)
    return schemas.BarcodeLookupResponse(
        barcode=schemas.BarcodeItemResponse.model_validate(record),
        partner_key=partner_key,
    )


@router.get("/organizations/{organization_id}/barcode_items/digest", response_model=list[schemas.BarcodeDigest])
async def organization_barcode_digest(
    organization_id: uuid.UUID,
    include_global: bool = False,
    session: AsyncSession = Depends(get_session),
):
    store = BarcodeStore(session)
    records = await store.list_for_organization(organization_id, include_global)
    return [schemas.BarcodeDigest(**store.to_digest(r)) for r in records]


@router.get("/barcode_items", response_model=list[schemas.BarcodeItemResponse])
async def filter_barcodes(
    canonical_partner_key: str | None = Query(default=None, max_length=64),
    item_partner_key: str | None = Query(default=None, max_length=64),
    value: str | None = Query(default=None, max_length=255),
    session: AsyncSession = Depends(get_session),
):
    store = BarcodeStore(session)
    if canonical_partner_key:
        records = await store.list_by_canonical_partner_key(canonical_partner_key)
    elif item_partner_key:
        records = await store.list_by_item_partner_key(item_partner_key)
    elif value:
        records = await store.find_by_value(value)
    else:
        raise HTTPException(status_code=400, detail="Se requiere un filtro: canonical_partner_key, item_partner_key o value")
    return [schemas.BarcodeItemResponse.model_validate(r) for r in records]


@router.get("/barcode_items/owners/{owner_kind}/{owner_id}", response_model=list[schemas.BarcodeItemResponse])
async def list_owner_barcodes(
    owner_kind: OwnerKind,
    owner_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
):
    records = await BarcodeStore(session).find_by_owner(OwnerRef(owner_kind, owner_id))
    return [schemas.BarcodeItemResponse.model_validate(r) for r in records]

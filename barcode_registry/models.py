import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, Text, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .barcodes import OwnerKind, OwnerRef


class Base(DeclarativeBase):
    pass


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    items: Mapped[list["Item"]] = relationship("Item", back_populates="organization")


class CanonicalItem(Base):
    __tablename__ = "canonical_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    partner_key: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    barcode_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Item(Base):
    __tablename__ = "items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    canonical_item_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("canonical_items.id"), nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    partner_key: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    barcode_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    organization: Mapped[Organization] = relationship("Organization", back_populates="items")
    canonical_item: Mapped[CanonicalItem | None] = relationship("CanonicalItem")


class BarcodeItem(Base):
    __tablename__ = "barcode_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    owner_kind: Mapped[OwnerKind] = mapped_column(
        Enum(
            OwnerKind,
            name="barcode_owner_kind",
            native_enum=False,
            length=32,
            values_callable=lambda kinds: [k.value for k in kinds],
        ),
        nullable=False,
    )
    # polymorphic: points at items.id or canonical_items.id depending on owner_kind
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("organizations.id"), nullable=True)
    is_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_barcode_items_quantity_non_negative"),
        CheckConstraint("is_global = (organization_id IS NULL)", name="ck_barcode_items_global_scope"),
        Index(
            "uq_barcode_items_global_value",
            "value",
            unique=True,
            postgresql_where=text("organization_id IS NULL"),
            sqlite_where=text("organization_id IS NULL"),
        ),
        Index(
            "uq_barcode_items_org_value",
            "organization_id",
            "value",
            unique=True,
            postgresql_where=text("organization_id IS NOT NULL"),
            sqlite_where=text("organization_id IS NOT NULL"),
        ),
        Index("ix_barcode_items_owner", "owner_kind", "owner_id"),
    )

    @property
    def owner_ref(self) -> OwnerRef:
        return OwnerRef(OwnerKind(self.owner_kind), self.owner_id)

    def __repr__(self) -> str:
        scope = "global" if self.is_global else f"org={self.organization_id}"
        return f"<BarcodeItem id={self.id} value={self.value!r} {scope} owner={self.owner_kind}:{self.owner_id}>"


OWNER_MODELS: dict[OwnerKind, type[Item] | type[CanonicalItem]] = {
    OwnerKind.ITEM: Item,
    OwnerKind.CANONICAL_ITEM: CanonicalItem,
}

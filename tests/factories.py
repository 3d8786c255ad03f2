import os
import tempfile
import unittest
import uuid

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from barcode_registry.models import Base, CanonicalItem, Item, Organization


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Fresh in-memory database per test."""

    def make_engine(self):
        return create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    async def asyncSetUp(self) -> None:
        self.engine = self.make_engine()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        self.session = self.session_factory()

    async def asyncTearDown(self) -> None:
        await self.session.close()
        await self.engine.dispose()


class FileDatabaseTestCase(DatabaseTestCase):
    """SQLite file database, one connection per session, for concurrent writers."""

    def make_engine(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        path = os.path.join(self._tmpdir.name, "barcodes.db")
        return create_async_engine(f"sqlite+aiosqlite:///{path}", connect_args={"timeout": 5})


async def create_organization(session, name: str | None = None) -> Organization:
    org = Organization(name=name or f"org-{uuid.uuid4().hex[:8]}")
    session.add(org)
    await session.commit()
    return org


async def create_canonical_item(session, name: str = "Diapers - Size 1", partner_key: str | None = None) -> CanonicalItem:
    canonical = CanonicalItem(name=name, partner_key=partner_key or f"key-{uuid.uuid4().hex[:8]}")
    session.add(canonical)
    await session.commit()
    return canonical


async def create_item(
    session,
    organization: Organization,
    name: str = "Diapers - Size 1",
    partner_key: str | None = None,
    canonical_item: CanonicalItem | None = None,
) -> Item:
    item = Item(
        organization_id=organization.id,
        canonical_item_id=canonical_item.id if canonical_item else None,
        name=name,
        partner_key=partner_key or f"key-{uuid.uuid4().hex[:8]}",
    )
    session.add(item)
    await session.commit()
    return item

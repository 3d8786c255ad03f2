import unittest
import uuid
from unittest.mock import patch

import httpx
from factories import DatabaseTestCase, create_canonical_item, create_item, create_organization
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from barcode_registry.deps import get_session
from barcode_registry.main import app


class BarcodeApiTests(DatabaseTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()

        async def _session():
            yield self.session

        app.dependency_overrides[get_session] = _session
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        self.org = await create_organization(self.session)
        self.other_org = await create_organization(self.session)
        self.item = await create_item(self.session, self.org, partner_key="custom")
        self.canonical = await create_canonical_item(self.session, partner_key="base")

    async def asyncTearDown(self) -> None:
        await self.client.aclose()
        app.dependency_overrides.clear()
        await super().asyncTearDown()

    async def _register_local(self, value: str, quantity=1):
        return await self.client.post(
            f"/organizations/{self.org.id}/barcode_items",
            json={"item_id": str(self.item.id), "value": value, "quantity": quantity},
        )

    async def _register_global(self, value: str, quantity=1):
        return await self.client.post(
            "/barcode_items/global",
            json={"canonical_item_id": str(self.canonical.id), "value": value, "quantity": quantity},
        )

    async def test_health(self) -> None:
        resp = await self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    async def test_register_and_lookup_prefers_local(self) -> None:
        resp = await self._register_global("DEADBEEF", 10)
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(resp.json()["is_global"])
        resp = await self._register_local("DEADBEEF", 50)
        self.assertEqual(resp.status_code, 201)
        local_id = resp.json()["id"]

        resp = await self.client.get(f"/organizations/{self.org.id}/barcode_items/lookup", params={"value": "DEADBEEF"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["barcode"]["id"], local_id)
        self.assertEqual(body["barcode"]["quantity"], 50)
        self.assertEqual(body["partner_key"], "custom")

        resp = await self.client.get(
            f"/organizations/{self.other_org.id}/barcode_items/lookup", params={"value": "DEADBEEF"}
        )
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["barcode"]["is_global"])
        self.assertEqual(resp.json()["partner_key"], "base")

    async def test_lookup_not_found(self) -> None:
        resp = await self.client.get(f"/organizations/{self.org.id}/barcode_items/lookup", params={"value": "NOPE"})
        self.assertEqual(resp.status_code, 404)

    async def test_validation_errors_are_reported_together(self) -> None:
        resp = await self.client.post(
            f"/organizations/{self.org.id}/barcode_items",
            json={"item_id": str(uuid.uuid4()), "value": "", "quantity": "aaa"},
        )
        self.assertEqual(resp.status_code, 422)
        codes = {issue["code"] for issue in resp.json()["detail"]}
        self.assertEqual(codes, {"missing_owner", "missing_value", "invalid_quantity_type"})

    async def test_item_of_another_organization_is_rejected(self) -> None:
        resp = await self.client.post(
            f"/organizations/{self.other_org.id}/barcode_items",
            json={"item_id": str(self.item.id), "value": "X1", "quantity": 1},
        )
        self.assertEqual(resp.status_code, 422)
        self.assertEqual([i["code"] for i in resp.json()["detail"]], ["missing_owner"])
        resp = await self.client.get(f"/organizations/{self.other_org.id}/barcode_items/lookup", params={"value": "X1"})
        self.assertEqual(resp.status_code, 404)

    async def test_quantity_reaches_validation_untouched(self) -> None:
        resp = await self._register_local("DEADBEEF", True)
        self.assertEqual(resp.status_code, 422)
        self.assertEqual([i["code"] for i in resp.json()["detail"]], ["invalid_quantity_type"])

        resp = await self._register_local("", 1.5)
        self.assertEqual(resp.status_code, 422)
        codes = {issue["code"] for issue in resp.json()["detail"]}
        self.assertEqual(codes, {"missing_value", "invalid_quantity_type"})

    async def test_duplicate_registration(self) -> None:
        self.assertEqual((await self._register_local("DEADBEEF")).status_code, 201)
        resp = await self._register_local("DEADBEEF")
        self.assertEqual(resp.status_code, 422)
        self.assertEqual([i["code"] for i in resp.json()["detail"]], ["duplicate_value"])
        self.assertEqual(resp.json()["detail"][0]["message"], "El código de barras ya está registrado")

    async def test_listing_and_digest(self) -> None:
        await self._register_local("L1", 5)
        await self._register_global("G1", 1)

        resp = await self.client.get(f"/organizations/{self.org.id}/barcode_items")
        self.assertEqual([b["value"] for b in resp.json()], ["L1"])
        resp = await self.client.get(f"/organizations/{self.org.id}/barcode_items", params={"include_global": "true"})
        self.assertEqual({b["value"] for b in resp.json()}, {"L1", "G1"})

        resp = await self.client.get(f"/organizations/{self.org.id}/barcode_items/digest")
        self.assertEqual(resp.json(), [{"owner_id": str(self.item.id), "owner_kind": "Item", "quantity": 5}])

    async def test_filters(self) -> None:
        await self._register_local("L1")
        await self._register_global("G1")

        resp = await self.client.get("/barcode_items", params={"canonical_partner_key": "base"})
        self.assertEqual([b["value"] for b in resp.json()], ["G1"])
        resp = await self.client.get("/barcode_items", params={"item_partner_key": "custom"})
        self.assertEqual([b["value"] for b in resp.json()], ["L1"])
        resp = await self.client.get("/barcode_items", params={"value": "G1"})
        self.assertEqual(len(resp.json()), 1)
        resp = await self.client.get("/barcode_items")
        self.assertEqual(resp.status_code, 400)

        resp = await self.client.get(f"/barcode_items/owners/Item/{self.item.id}")
        self.assertEqual([b["value"] for b in resp.json()], ["L1"])

    async def test_store_outage_is_503(self) -> None:
        error = OperationalError("SELECT", {}, Exception("connection refused"))
        with patch.object(AsyncSession, "execute", side_effect=error):
            resp = await self.client.get(
                f"/organizations/{self.org.id}/barcode_items/lookup", params={"value": "DEADBEEF"}
            )
        self.assertEqual(resp.status_code, 503)


if __name__ == "__main__":
    unittest.main()

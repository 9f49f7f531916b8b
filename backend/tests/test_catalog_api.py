import unittest
import uuid

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from servicedesk.core.auth import CurrentUser, get_current_user
from servicedesk.core.dependencies import get_db
from servicedesk.main import app
from servicedesk.models import service_request  # noqa: F401  registers request tables on Base.metadata
from servicedesk.models.base import Base
from servicedesk.services.catalog_service import slugify


class CatalogApiTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.current_user = CurrentUser(id=str(uuid.uuid4()), role="ADMIN")
        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_current_user] = lambda: self.current_user
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _create(self, kind: str, **payload) -> dict:
        resp = self.client.post(f"/api/v1/catalog/admin/{kind}", json=payload)
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    def test_create_category_derives_slug(self):
        body = self._create("category", title="Social Media Marketing")
        self.assertEqual(body["slug"], "social-media-marketing")
        self.assertTrue(body["isActive"])
        self.assertEqual(body["kind"], "category")

    def test_duplicate_title_is_conflict(self):
        self._create("category", title="Branding")
        resp = self.client.post("/api/v1/catalog/admin/category", json={"title": "branding"})
        self.assertEqual(resp.status_code, 409)

    def test_service_requires_existing_category(self):
        resp = self.client.post(
            "/api/v1/catalog/admin/service",
            json={"title": "SEO Audit", "categoryId": str(uuid.uuid4())},
        )
        self.assertEqual(resp.status_code, 404)

        resp = self.client.post("/api/v1/catalog/admin/service", json={"title": "SEO Audit"})
        self.assertEqual(resp.status_code, 400)

    def test_public_lists_only_active_entries(self):
        category = self._create("category", title="Design")
        logo = self._create(
            "service",
            title="Logo Design",
            categoryId=category["id"],
            startingPrice="2999",
            deliveryValue=5,
            deliveryUnit="days",
        )
        banner = self._create("service", title="Banner Design", categoryId=category["id"])

        toggled = self.client.put(f"/api/v1/catalog/admin/service/{banner['id']}/toggle-active")
        self.assertEqual(toggled.status_code, 200)
        self.assertFalse(toggled.json()["isActive"])

        resp = self.client.get(f"/api/v1/catalog/categories/{category['id']}/services")
        self.assertEqual(resp.status_code, 200)
        items = resp.json()["items"]
        self.assertEqual([item["id"] for item in items], [logo["id"]])
        self.assertEqual(items[0]["deliveryTime"], "5 days")
        self.assertEqual(items[0]["price"], 2999.0)

    def test_templates_filter_by_service(self):
        category = self._create("category", title="Web")
        landing = self._create("service", title="Landing Page", categoryId=category["id"])
        shop = self._create("service", title="Online Shop", categoryId=category["id"])
        template = self._create("template", title="Hero Split", serviceId=landing["id"])
        self._create("template", title="Catalog Grid", serviceId=shop["id"])

        self.assertEqual(template["categoryId"], category["id"])
        resp = self.client.get("/api/v1/catalog/templates", params={"service_id": landing["id"]})
        self.assertEqual([item["title"] for item in resp.json()["items"]], ["Hero Split"])

    def test_combos_and_categories_listing(self):
        self._create("category", title="Video")
        combo = self._create("combo", title="Launch Bundle", originalPrice="15000", discountedPrice="12000")
        self.assertEqual(combo["price"], 12000.0)

        self.assertEqual(len(self.client.get("/api/v1/catalog/categories").json()["items"]), 1)
        self.assertEqual(len(self.client.get("/api/v1/catalog/combos").json()["items"]), 1)

    def test_unknown_category_services_is_404(self):
        resp = self.client.get(f"/api/v1/catalog/categories/{uuid.uuid4()}/services")
        self.assertEqual(resp.status_code, 404)

    def test_admin_create_requires_admin(self):
        self.current_user = CurrentUser(id=str(uuid.uuid4()), role="STAFF")
        resp = self.client.post("/api/v1/catalog/admin/category", json={"title": "Nope"})
        self.assertEqual(resp.status_code, 403)


def test_slugify_strips_punctuation():
    assert slugify("  SEO & Content -- Writing! ") == "seo-content-writing"

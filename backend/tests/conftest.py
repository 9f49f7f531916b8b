from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from servicedesk.core.config import get_settings
from servicedesk.models.base import Base
from servicedesk.models.catalog import Category, Combo, Service, Template
from servicedesk.models import service_request  # noqa: F401  registers request tables on Base.metadata
from servicedesk.utils.alerting import alert_tracker
from servicedesk.utils.rate_limit import rate_limiter


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Tests mutate env vars; never leak a cached Settings instance across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_in_memory_counters():
    rate_limiter.reset()
    alert_tracker.reset()
    yield
    rate_limiter.reset()
    alert_tracker.reset()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine)
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db):
    design = Category(title="Graphic Design", slug="graphic-design", description="")
    marketing = Category(title="Social Media Marketing", slug="social-media-marketing", description="")
    db.add_all([design, marketing])
    db.flush()

    logo = Service(
        category_id=design.id,
        title="Logo Design",
        slug="logo-design",
        description="",
        starting_price=2999,
        currency="INR",
        delivery_value=5,
        delivery_unit="days",
    )
    retired = Service(
        category_id=design.id,
        title="Print Brochure",
        slug="print-brochure",
        description="",
        starting_price=1999,
        is_active=False,
    )
    ads = Service(category_id=marketing.id, title="Ad Campaign", slug="ad-campaign", description="", starting_price=4999)
    db.add_all([logo, retired, ads])
    db.flush()

    minimal = Template(category_id=design.id, service_id=logo.id, title="Minimal Mark", slug="minimal-mark", description="")
    starter = Combo(
        title="Starter Pack",
        slug="starter-pack",
        description="",
        original_price=9999,
        discounted_price=7999,
    )
    db.add_all([minimal, starter])
    db.commit()

    return SimpleNamespace(
        design=design,
        marketing=marketing,
        logo=logo,
        retired=retired,
        ads=ads,
        minimal=minimal,
        starter=starter,
    )


def build_create_payload(catalog, **overrides):
    payload = {
        "selectionPath": {
            "selectedCategory": str(catalog.design.id),
            "selectedService": str(catalog.logo.id),
        },
        "requestType": "service",
        "clientInfo": {
            "fullName": "Jane Doe",
            "email": "jane@x.com",
            "phone": "9876543210",
        },
        "requirements": {
            "businessDescription": "Boutique bakery",
            "colors": {"preferred": ["#ff8800"], "avoid": []},
            "tone": "casual",
            "customFields": [{"name": "tagline", "label": "Tagline", "value": "Fresh daily", "kind": "text"}],
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_payload(catalog):
    return lambda **overrides: build_create_payload(catalog, **overrides)

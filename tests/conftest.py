"""
Shared fixtures.

Settings are read from the environment at import time, so the database URL
and token key are set before anything from ``requisition_crm`` is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["AUTO_ADVANCE_APPROVED_TO_CC"] = "true"

import uuid
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from requisition_crm import models  # noqa: F401
from requisition_crm.core.security import Principal, UserRole, create_access_token
from requisition_crm.database import Base, build_engine, build_session_factory, get_db
from requisition_crm.main import app
from requisition_crm.models.site import Site
from requisition_crm.models.vendor import Vendor
from requisition_crm.schemas.cost_comparison import VendorQuoteInput
from requisition_crm.schemas.request import RequestItemCreate
from requisition_crm.services.cost_comparison_service import CostComparisonService
from requisition_crm.services.inventory_service import InventoryService
from requisition_crm.services.request_service import RequestService


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def file_engine(tmp_path):
    """File-backed database so concurrent sessions use separate connections."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


# ==================== Principals ====================

@pytest.fixture
def engineer():
    return Principal(id=uuid.uuid4(), role=UserRole.SITE_ENGINEER, name="Ravi")


@pytest.fixture
def other_engineer():
    return Principal(id=uuid.uuid4(), role=UserRole.SITE_ENGINEER, name="Meena")


@pytest.fixture
def manager():
    return Principal(id=uuid.uuid4(), role=UserRole.MANAGER, name="Anil")


@pytest.fixture
def officer():
    return Principal(id=uuid.uuid4(), role=UserRole.PURCHASE_OFFICER, name="Farah")


def auth_headers(principal: Principal) -> dict:
    return {"Authorization": f"Bearer {create_access_token(principal.id, principal.role)}"}


@pytest.fixture
def headers_for():
    return auth_headers


# ==================== Master data ====================

async def make_site(db):
    site = Site(name="Tower B", code="TWB", address="Plot 14, Sector 62")
    db.add(site)
    await db.flush()
    return site


async def make_vendors(db):
    rows = [
        Vendor(company_name="Shree Cement Traders", gst_number="27AAACS1234F1Z5"),
        Vendor(company_name="Bharat Steel Supply", gst_number="27AAACB5678G1Z2"),
        Vendor(company_name="Old Supplier", is_active=False),
    ]
    db.add_all(rows)
    await db.flush()
    return rows


@pytest.fixture
async def site(db):
    return await make_site(db)


@pytest.fixture
async def vendors(db):
    return await make_vendors(db)


# ==================== Lifecycle driver ====================

class Workflow:
    """Moves a request through the lifecycle with the right principal at each step."""

    def __init__(self, db, engineer, manager, officer, site, vendors):
        self.db = db
        self.engineer = engineer
        self.manager = manager
        self.officer = officer
        self.site = site
        self.vendors = vendors
        self.requests = RequestService(db)
        self.cost_comparisons = CostComparisonService(db)
        self.inventory = InventoryService(db)

    async def stock(self, quantity="500", item_name="Cement OPC 53"):
        return await self.inventory.create(item_name, "bags", Decimal(quantity), [], self.officer)

    async def raise_request(self, quantity="100", item_name="Cement OPC 53", as_draft=False):
        items = [RequestItemCreate(item_name=item_name, quantity=Decimal(quantity), unit="bags")]
        created = await self.requests.create_requests(self.site.id, items, self.engineer, as_draft=as_draft)
        return created[0]

    async def ready_for_cc(self, quantity="100"):
        request = await self.raise_request(quantity)
        return await self.requests.approve(request.id, self.manager)

    async def cc_pending(self, quantity="100", prices=("10.5", "9.0"), gst=None, discount=None):
        request = await self.ready_for_cc(quantity)
        quotes = [
            VendorQuoteInput(
                vendor_id=vendor.id,
                unit_price=Decimal(price),
                gst_percent=Decimal(gst) if gst is not None else None,
                discount_percent=Decimal(discount) if discount is not None else None,
            )
            for vendor, price in zip(self.vendors, prices)
        ]
        await self.cost_comparisons.upsert(request.id, quotes, False, self.officer)
        await self.cost_comparisons.submit(request.id, self.officer)
        return request

    async def ready_for_po(self, quantity="100", prices=("10.5", "9.0"), select=1, gst=None, discount=None):
        request = await self.cc_pending(quantity, prices, gst, discount)
        await self.cost_comparisons.review(
            request.id, "approve", self.manager, selected_vendor_id=self.vendors[select].id
        )
        return await self.requests.get(request.id)

    async def delivery_stage(self, quantity="100"):
        request = await self.ready_for_po(quantity)
        request, _ = await self.requests.mark_ready_for_delivery(request.id, None, self.officer)
        return request


@pytest.fixture
def workflow(db, engineer, manager, officer, site, vendors):
    return Workflow(db, engineer, manager, officer, site, vendors)


@pytest.fixture
async def stocked(workflow):
    """Central store holding 500 bags of the item the workflow requests."""
    return await workflow.stock()


# ==================== API ====================

@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ==================== Two-session setups ====================

class CommittedWorkflow:
    """Runs ``Workflow`` steps against the file database, one committed session per step."""

    def __init__(self, sessions, engineer, manager, officer, site, vendors):
        self.sessions = sessions
        self.args = (engineer, manager, officer, site, vendors)
        self.vendors = vendors

    async def run(self, step, *args, **kwargs):
        async with self.sessions() as session:
            result = await getattr(Workflow(session, *self.args), step)(*args, **kwargs)
            await session.commit()
            return result


@pytest.fixture
def file_sessions(file_engine):
    return build_session_factory(file_engine)


@pytest.fixture
async def committed(file_sessions, engineer, manager, officer):
    async with file_sessions() as session:
        site = await make_site(session)
        vendors = await make_vendors(session)
        await session.commit()
    return CommittedWorkflow(file_sessions, engineer, manager, officer, site, vendors)

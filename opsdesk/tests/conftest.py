"""
Test fixtures - in-memory SQLite database + authenticated HTTP client
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from opsdesk.database import Base, get_db
from opsdesk.main import app
from opsdesk.api.auth import get_password_hash, create_access_token
from opsdesk.models.organization import Organization
from opsdesk.models.user import User
from opsdesk.models.client import Client
from opsdesk.models.worker import Worker, WorkerProjectRate
from opsdesk.models.project import Project, Service
from opsdesk.models.product import Category, Product
from opsdesk.services.storage import storage_service


@pytest_asyncio.fixture()
async def db_session():
    """Create a fresh in-memory SQLite database for each test"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture()
async def seed_data(db_session):
    """Insert baseline test data.

    Returns plain ids so tests can keep using them after a request rolls
    the session back.
    """
    org = Organization(name="Acme Home Services", currency="GHS")
    db_session.add(org)
    await db_session.flush()

    user = User(
        email="test@opsdesk.local",
        full_name="Test User",
        hashed_password=get_password_hash("testpass123"),
        is_admin=True,
        organization_id=org.id,
    )
    client = Client(organization_id=org.id, name="Jane Client", phone="0200000000")
    ama = Worker(organization_id=org.id, name="Ama Mensah", whatsapp="0240000001")
    kofi = Worker(organization_id=org.id, name="Kofi Boateng", whatsapp="0240000002")
    cleaning = Project(organization_id=org.id, name="Cleaning", base_price=50)
    painting = Project(organization_id=org.id, name="Painting", base_price=120)
    service = Service(organization_id=org.id, name="Deep clean", price=150)
    category = Category(organization_id=org.id, name="Supplies")
    db_session.add_all([user, client, ama, kofi, cleaning, painting, service, category])
    await db_session.flush()

    product = Product(
        organization_id=org.id,
        name="Mop",
        category="Supplies",
        unit_price=25,
        stock_quantity=10,
        reorder_point=2,
    )
    db_session.add_all([
        product,
        WorkerProjectRate(worker_id=ama.id, project_id=cleaning.id, rate=40),
        WorkerProjectRate(worker_id=kofi.id, project_id=cleaning.id, rate=35),
    ])
    await db_session.commit()

    return {
        "org_id": org.id,
        "user_id": user.id,
        "email": user.email,
        "client_id": client.id,
        "ama_id": ama.id,
        "kofi_id": kofi.id,
        "cleaning_id": cleaning.id,
        "painting_id": painting.id,
        "service_id": service.id,
        "category_id": category.id,
        "product_id": product.id,
    }


@pytest_asyncio.fixture()
async def client(db_session, seed_data):
    """Authenticated httpx AsyncClient bound to the FastAPI app"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    token = create_access_token(data={"sub": seed_data["email"]})

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        ac.headers["Authorization"] = f"Bearer {token}"
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauth_client(db_session):
    """Unauthenticated httpx AsyncClient"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture()
def upload_dir(tmp_path):
    """Point the storage bucket at a temporary directory"""
    previous = storage_service.root
    storage_service.root = str(tmp_path)
    yield tmp_path
    storage_service.root = previous

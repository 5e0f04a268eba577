"""
Test fixtures - in-memory SQLite database + authenticated HTTP clients per role
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from backend.database import Base, get_db
from backend.main import app
from backend.api.auth import create_access_token
from backend.models.user import User, UserRole
from backend.models.booking import Booking
from backend.services.events import EventBus


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
    """Insert baseline test data: client, provider, admin, outsider + one booking"""
    client_user = User(email="client@example.com", full_name="Dana Client", role=UserRole.CLIENT)
    provider = User(email="provider@example.com", full_name="Omer Provider", role=UserRole.PROVIDER)
    admin = User(email="admin@example.com", full_name="Site Admin", role=UserRole.ADMIN)
    outsider = User(email="outsider@example.com", full_name="Other Provider", role=UserRole.PROVIDER)

    db_session.add_all([client_user, provider, admin, outsider])
    await db_session.flush()

    booking = Booking(
        client_id=client_user.id,
        provider_id=provider.id,
        title="Office renovation",
        status="confirmed",
        progress_percentage=0,
    )
    db_session.add(booking)
    await db_session.commit()
    for obj in (client_user, provider, admin, outsider, booking):
        await db_session.refresh(obj)

    return {
        "client": client_user,
        "provider": provider,
        "admin": admin,
        "outsider": outsider,
        "booking": booking,
    }


@pytest_asyncio.fixture()
async def events():
    """Private event bus capturing everything published during a test"""
    bus = EventBus()
    captured = []
    bus.subscribe(captured.append)
    bus.captured = captured
    return bus


def _make_client(db_session, user=None):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    ac = AsyncClient(transport=transport, base_url="http://test", follow_redirects=True)
    if user is not None:
        token = create_access_token(data={"sub": user.email})
        ac.headers["Authorization"] = f"Bearer {token}"
    return ac


@pytest_asyncio.fixture()
async def client(db_session, seed_data):
    """Authenticated as the booking's client"""
    async with _make_client(db_session, seed_data["client"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def provider_client(db_session, seed_data):
    """Authenticated as the booking's provider"""
    async with _make_client(db_session, seed_data["provider"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def admin_client(db_session, seed_data):
    async with _make_client(db_session, seed_data["admin"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def outsider_client(db_session, seed_data):
    """Authenticated, but not a party to the booking"""
    async with _make_client(db_session, seed_data["outsider"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauth_client(db_session):
    """Unauthenticated httpx AsyncClient"""
    async with _make_client(db_session) as ac:
        yield ac
    app.dependency_overrides.clear()

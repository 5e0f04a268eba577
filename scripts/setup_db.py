"""
Database setup script - creates tables and a demo booking with its parties
"""
import asyncio
from sqlalchemy import select
from backend.database import engine, Base, AsyncSessionLocal
from backend.models.user import User, UserRole
from backend.models.booking import Booking
from backend.api.auth import create_access_token


async def setup_database():
    """Create tables and seed initial data"""
    print("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created")

    async with AsyncSessionLocal() as session:
        users = {}
        for email, name, role in [
            ("admin@example.com", "Platform Admin", UserRole.ADMIN),
            ("client@example.com", "Demo Client", UserRole.CLIENT),
            ("provider@example.com", "Demo Provider", UserRole.PROVIDER),
        ]:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if not user:
                user = User(email=email, full_name=name, role=role)
                session.add(user)
            users[role] = user
        await session.flush()

        result = await session.execute(select(Booking))
        booking = result.scalars().first()
        if not booking:
            booking = Booking(
                client_id=users[UserRole.CLIENT].id,
                provider_id=users[UserRole.PROVIDER].id,
                title="Demo booking",
            )
            session.add(booking)

        await session.commit()
        print(f"Seed data created (booking id={booking.id})")

    print("\nDatabase setup complete!")
    print("\nBearer tokens:")
    for role, user in users.items():
        print(f"  {role.value}: {create_access_token(data={'sub': user.email})}")


if __name__ == "__main__":
    asyncio.run(setup_database())

"""
Database setup script
"""
import asyncio
from sqlalchemy import select

from opsdesk.config import get_settings
from opsdesk.database import engine, Base, AsyncSessionLocal
from opsdesk.main import seed_defaults
from opsdesk.models import Organization, Project, Service, Category, Product

settings = get_settings()


async def setup_database():
    """Create tables, the default organization and a starter catalog"""
    print("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created")

    await seed_defaults(AsyncSessionLocal)

    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(Organization).where(Organization.name == settings.DEFAULT_ORGANIZATION_NAME)
        )
        org = result.scalars().first()

        existing = await session.execute(select(Project.id).where(Project.organization_id == org.id))
        if existing.first():
            print("Catalog already present, skipping")
        else:
            session.add_all([
                Project(organization_id=org.id, name="Cleaning", base_price=50.0),
                Project(organization_id=org.id, name="Painting", base_price=120.0),
                Service(organization_id=org.id, name="Deep clean", price=150.0),
                Service(organization_id=org.id, name="Wall painting", price=400.0),
                Category(organization_id=org.id, name="Supplies"),
                Product(
                    organization_id=org.id,
                    name="Mop",
                    category="Supplies",
                    unit_price=25.0,
                    stock_quantity=20,
                    reorder_point=5,
                ),
            ])
            await session.commit()
            print("Seed data created")

    print("\nDatabase setup complete!")
    print("\nDefault login:")
    print(f"  Email: {settings.ADMIN_EMAIL}")
    print(f"  Password: {settings.ADMIN_PASSWORD}")


if __name__ == "__main__":
    asyncio.run(setup_database())

"""
Main FastAPI application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select

from opsdesk.config import get_settings
from opsdesk.database import engine, Base, AsyncSessionLocal
from opsdesk.models import Organization, User
from opsdesk.api.auth import get_password_hash
from opsdesk.api import auth, clients, workers, projects, service_catalog, categories, products
from opsdesk.api import orders, sales_orders, payments, tasks, dashboard, financial, reports, files
from opsdesk.services.errors import OpsdeskError
from opsdesk.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)


async def seed_defaults(session_factory=AsyncSessionLocal):
    """Create the default organization and admin user on an empty database"""
    async with session_factory() as session:
        result = await session.execute(
            select(Organization).where(Organization.name == settings.DEFAULT_ORGANIZATION_NAME)
        )
        organization = result.scalars().first()
        if not organization:
            organization = Organization(
                name=settings.DEFAULT_ORGANIZATION_NAME,
                currency=settings.DEFAULT_CURRENCY,
            )
            session.add(organization)
            await session.flush()
            logger.info(f"Created default organization {organization.name}")

        result = await session.execute(select(User).where(User.email == settings.ADMIN_EMAIL))
        if not result.scalar_one_or_none():
            session.add(User(
                email=settings.ADMIN_EMAIL,
                full_name="Administrator",
                hashed_password=get_password_hash(settings.ADMIN_PASSWORD),
                is_admin=True,
                organization_id=organization.id,
            ))
            logger.info("Created default admin user")

        await session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")

    await seed_defaults()

    yield

    # Cleanup
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OpsdeskError)
async def opsdesk_error_handler(request: Request, exc: OpsdeskError):
    if exc.status_code >= 409:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(clients.router, prefix="/api/clients", tags=["Clients"])
app.include_router(workers.router, prefix="/api/workers", tags=["Workers"])
app.include_router(projects.router, prefix="/api/projects", tags=["Projects"])
app.include_router(service_catalog.router, prefix="/api/services", tags=["Services"])
app.include_router(categories.router, prefix="/api/categories", tags=["Categories"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(sales_orders.router, prefix="/api/sales-orders", tags=["Sales Orders"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["Tasks"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(financial.router, prefix="/api/financial", tags=["Financial"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(files.router, prefix="/api/files", tags=["Files"])


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "opsdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )

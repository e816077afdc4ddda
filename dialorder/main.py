"""
FastAPI Application Entry Point

Dial Order - multi-tenant phone-ordering backend.
The voice agent calls the /tools endpoints during a call; POS integrations run
live or mocked per provider.

Endpoints:
    - POST /inbound: Resolve the dialed number to a restaurant, register the call
    - GET  /tools/menu: Current normalized menu
    - POST /tools/search_menu: Ranked item search
    - POST /tools/draft_order: Validate selections and create a draft
    - POST /tools/price_order: Price a draft through the POS
    - POST /tools/submit_order: Idempotent submission to the POS
    - PUT  /admin/restaurants/{id}/credentials/{provider}: Store POS credentials
    - POST /admin/restaurants/{id}/menu/sync: Pull the menu from the POS
    - GET  /health: System health check

Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Depends, Query, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from dialorder.core.config import get_settings, setup_logging
from dialorder.core.errors import DialOrderError, NotFoundError
from dialorder.database import get_db, init_db, engine
from dialorder.models import PosProvider
from dialorder.schemas import (
    CredentialPublic,
    CredentialUpsert,
    DraftOrderRequest,
    DraftOrderResponse,
    ErrorResponse,
    HealthResponse,
    InboundCallRequest,
    InboundCallResponse,
    MenuSnapshot,
    MenuSyncResponse,
    PriceOrderRequest,
    PriceOrderResponse,
    SearchMenuRequest,
    SearchMenuResponse,
    SubmitOrderRequest,
    SubmitOrderResponse,
)
from dialorder.services.credentials import CredentialStore
from dialorder.services.menu import MenuCatalog
from dialorder.services.orders import OrderPipeline
from dialorder.services.pos import get_pos_provider
from dialorder.services.tenant import TenantResolver

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    for provider in PosProvider:
        mode = "mock" if settings.provider_mock_enabled(provider.value) else "live"
        logger.info(f"POS {provider.value}: {mode}")

    missing = settings.validate_production_config()
    if missing:
        logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-tenant phone-ordering backend. A voice agent looks up menus, "
        "drafts, prices and submits orders into each restaurant's POS."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_provider_factory() -> Callable:
    """POS adapter factory; overridden in tests to inject a fake transport."""
    return get_pos_provider


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify the database is reachable and report POS modes."""
    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    return HealthResponse(
        status="operational" if db_status == "healthy" else "degraded",
        database=db_status,
        environment=settings.env_mode.value,
        providers={
            provider.value: "mock" if settings.provider_mock_enabled(provider.value) else "live"
            for provider in PosProvider
        },
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# TELEPHONY
# =============================================================================

@app.post(
    "/inbound",
    response_model=InboundCallResponse,
    responses=ERROR_RESPONSES,
    tags=["Telephony"],
    summary="Inbound Call Hand-off",
)
async def inbound_call(
    payload: InboundCallRequest,
    db: AsyncSession = Depends(get_db),
) -> InboundCallResponse:
    """
    Resolve the dialed number to an active restaurant and register the call.

    The returned restaurant_id and call_id are passed back on every tool call.
    """
    tenants = TenantResolver(db)
    restaurant = await tenants.resolve_by_phone(payload.to_number)
    if restaurant is None:
        raise NotFoundError("no restaurant for dialed number", {"to_number": payload.to_number})

    restaurant = await tenants.require_by_id(restaurant.id)
    call = await tenants.register_call(restaurant, payload.from_number, payload.to_number)

    return InboundCallResponse(
        restaurant_id=restaurant.id,
        restaurant_name=restaurant.name,
        call_id=call.id,
    )


# =============================================================================
# VOICE AGENT TOOLS
# =============================================================================

@app.get(
    "/tools/menu",
    response_model=MenuSnapshot,
    responses=ERROR_RESPONSES,
    tags=["Tools"],
)
async def lookup_menu(
    restaurant_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> MenuSnapshot:
    """Current menu snapshot of an active restaurant."""
    restaurant = await TenantResolver(db).require_by_id(restaurant_id)
    return await MenuCatalog(db).load(restaurant)


@app.post(
    "/tools/search_menu",
    response_model=SearchMenuResponse,
    responses=ERROR_RESPONSES,
    tags=["Tools"],
)
async def search_menu(
    payload: SearchMenuRequest,
    db: AsyncSession = Depends(get_db),
) -> SearchMenuResponse:
    """Free-text item search with modifier groups expanded."""
    restaurant = await TenantResolver(db).require_by_id(payload.restaurant_id)
    return await MenuCatalog(db).search(restaurant, payload.query, payload.limit)


@app.post(
    "/tools/draft_order",
    response_model=DraftOrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Tools"],
)
async def draft_order(
    payload: DraftOrderRequest,
    db: AsyncSession = Depends(get_db),
    provider_factory: Callable = Depends(get_provider_factory),
) -> DraftOrderResponse:
    """Validate selections against the menu and store a draft order."""
    restaurant = await TenantResolver(db).require_by_id(payload.restaurant_id)
    return await OrderPipeline(db, provider_factory).create_draft(
        restaurant,
        payload.call_id,
        payload.selections,
        notes=payload.notes,
        pickup_name=payload.pickup_name,
        pickup_phone=payload.pickup_phone,
        client_order_id=payload.client_order_id,
    )


@app.post(
    "/tools/price_order",
    response_model=PriceOrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Tools"],
)
async def price_order(
    payload: PriceOrderRequest,
    db: AsyncSession = Depends(get_db),
    provider_factory: Callable = Depends(get_provider_factory),
) -> PriceOrderResponse:
    """Price a draft through the restaurant's POS."""
    restaurant = await TenantResolver(db).require_by_id(payload.restaurant_id)
    return await OrderPipeline(db, provider_factory).price(restaurant, payload.order_id)


@app.post(
    "/tools/submit_order",
    response_model=SubmitOrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Tools"],
)
async def submit_order(
    payload: SubmitOrderRequest,
    db: AsyncSession = Depends(get_db),
    provider_factory: Callable = Depends(get_provider_factory),
) -> SubmitOrderResponse:
    """Submit to the POS; repeating a client_order_id returns the first result."""
    restaurant = await TenantResolver(db).require_by_id(payload.restaurant_id)
    return await OrderPipeline(db, provider_factory).submit(
        restaurant,
        payload.order_id,
        payload.client_order_id,
    )


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

@app.put(
    "/admin/restaurants/{restaurant_id}/credentials/{provider}",
    response_model=CredentialPublic,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def upsert_credentials(
    restaurant_id: str,
    provider: PosProvider,
    payload: CredentialUpsert,
    db: AsyncSession = Depends(get_db),
) -> CredentialPublic:
    """Create or replace POS credentials; secrets are never echoed back."""
    restaurant = await TenantResolver(db).require_by_id(restaurant_id, active_only=False)
    return await CredentialStore(db).upsert(restaurant.id, provider.value, payload)


@app.post(
    "/admin/restaurants/{restaurant_id}/menu/sync",
    response_model=MenuSyncResponse,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def sync_menu(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
    provider_factory: Callable = Depends(get_provider_factory),
) -> MenuSyncResponse:
    """Pull the catalog from the restaurant's POS and replace the stored menu."""
    restaurant = await TenantResolver(db).require_by_id(restaurant_id)
    return await MenuCatalog(db).sync_from_provider(restaurant, provider_factory)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(DialOrderError)
async def dialorder_exception_handler(request: Request, exc: DialOrderError) -> JSONResponse:
    """Domain errors carry their own status code and structured details."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "error_code": "internal_error",
            "details": {"reason": str(exc)} if settings.debug else None,
        },
    )


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dialorder.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )

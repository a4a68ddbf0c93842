from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.users.routes import router as user_router
from app.features.teams.routes import router as team_router
from app.features.permissions.routes import router as permission_router
from app.features.permissions.exceptions import (
    AuthorizationServiceError,
    DuplicateName,
    Forbidden,
    InUse,
    InvalidName,
    NotFound,
    StoreError,
)
from app.features.permissions.repository import PermissionRepository
from app.features.permissions.roles import RoleRegistry
from app.features.users.dependencies import get_authorization_header
from app.features.users.service import ensure_initial_admin
from app.utils import get_logger


log = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app):
    """Initialize database and seed the permission catalog on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")

    if config.SEED_ON_STARTUP:
        async with AsyncSessionLocal() as db:
            created = await PermissionRepository(db).seed_catalog()
            roles_created = await RoleRegistry(db).ensure_system_roles()
            await ensure_initial_admin(
                db, config.INITIAL_ADMIN_SUBJECT, config.INITIAL_ADMIN_EMAIL, config.INITIAL_ADMIN_NAME
            )
        log.info("Startup seed: %d permissions, %d system roles", created, roles_created)
    yield


log.info("Initializing server")
app = FastAPI(
    title="CRM Permissions",
    description="Role and permission authorization service for the CRM console",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None,
    lifespan=lifespan,
)
limiter = Limiter(key_func=get_authorization_header, default_limits=[config.RATE_LIMIT])
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("crm.app.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("crm", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


ERROR_STATUS = {
    DuplicateName: 409,
    Forbidden: 403,
    InUse: 409,
    InvalidName: 400,
    NotFound: 404,
    StoreError: 503,
}


@app.exception_handler(AuthorizationServiceError)
async def authorization_error_handler(_request: Request, exc: AuthorizationServiceError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    if status_code >= 500:
        log.error("Store failure: %s", exc.message)
    else:
        log.info("Request refused (%s): %s", exc.kind, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.kind, "detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "CRM Permissions API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": ["/users/*", "/teams/*", "/permissions/*"],
            "public_endpoints": ["/", "/health"]
        },
        "features": {
            "permissions": "Object/level/scope permission catalog, roles and access decisions",
            "teams": "Team membership used by the team permission scope",
            "users": "User profiles and role assignment",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])
# Alias for singular form (if frontend uses /user/me)
app.include_router(user_router, prefix="/user", tags=["users"], include_in_schema=False)

# Team routes
app.include_router(team_router, prefix="/teams", tags=["teams"])

# Permission routes (catalog, roles, matrix, access checks)
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])

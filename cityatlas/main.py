import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cityatlas.core.config import settings
from cityatlas.core.errors import (
    AuthorizationDenied,
    CityAtlasError,
    InvariantViolation,
    NotFound,
    StoreUnavailable,
    ValidationError,
)
from cityatlas.core.logging_config import configure_logging
import cityatlas.models  # noqa: F401  # force model registration

from cityatlas.api.v1.auth import router as auth_router
from cityatlas.api.v1.grants import router as grants_router
from cityatlas.api.v1.invitations import router as invitations_router
from cityatlas.api.v1.languages import router as languages_router
from cityatlas.api.v1.map import router as map_router
from cityatlas.api.v1.taxonomy import router as taxonomy_router
from cityatlas.api.v1.tenants import router as tenants_router

logger = logging.getLogger(__name__)

# Most specific first; subclasses are matched before their bases.
ERROR_STATUS = (
    (AuthorizationDenied, 403),
    (NotFound, 404),
    (InvariantViolation, 409),
    (ValidationError, 422),
    (StoreUnavailable, 503),
)


def status_for(exc: CityAtlasError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return 400


async def cityatlas_error_handler(request: Request, exc: CityAtlasError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.to_dict()})


def create_application() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="CityAtlas API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CityAtlasError, cityatlas_error_handler)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "cityatlas"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(tenants_router, prefix="/api/v1")
    app.include_router(grants_router, prefix="/api/v1")
    app.include_router(invitations_router, prefix="/api/v1")
    app.include_router(taxonomy_router, prefix="/api/v1")
    app.include_router(languages_router, prefix="/api/v1")
    app.include_router(map_router, prefix="/api/v1")

    return app


app = create_application()

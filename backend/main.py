import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

try:
    from backend.app.entitlements import EntitlementError
    from backend.app.routes.entitlements import router as entitlements_router
    from backend.app.schemas.entitlements import HealthResponse, ReadinessResponse
    from backend.app.services.entitlements import build_entitlement_service, build_entitlement_store
    from backend.config import ServiceConfig, load_service_config
except ModuleNotFoundError as exc:  # pragma: no cover - fallback for local execution
    if exc.name != "backend":
        raise
    from app.entitlements import EntitlementError  # type: ignore[no-redef]
    from app.routes.entitlements import router as entitlements_router  # type: ignore[no-redef]
    from app.schemas.entitlements import HealthResponse, ReadinessResponse  # type: ignore[no-redef]
    from app.services.entitlements import (  # type: ignore[no-redef]
        build_entitlement_service,
        build_entitlement_store,
    )
    from config import ServiceConfig, load_service_config  # type: ignore[no-redef]


logger = logging.getLogger("entitlements")


def create_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    load_dotenv()
    config = config or load_service_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    app = FastAPI(title="Entitlements Service")
    app.state.config = config
    app.state.entitlement_store = None
    app.state.entitlement_service = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials="*" not in config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(entitlements_router)

    @app.exception_handler(EntitlementError)
    async def handle_entitlement_error(request: Request, exc: EntitlementError) -> JSONResponse:
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.payload))

    @app.on_event("startup")
    def open_store() -> None:
        store = build_entitlement_store(config)
        app.state.entitlement_store = store
        app.state.entitlement_service = build_entitlement_service(config, store)
        logger.info("Entitlements service started store=%s", config.store_backend)

    @app.on_event("shutdown")
    def close_store() -> None:
        store = app.state.entitlement_store
        if store is not None:
            store.close()
            app.state.entitlement_store = None
            app.state.entitlement_service = None
        logger.info("Entitlements service stopped")

    @app.get("/healthz", response_model=HealthResponse)
    def healthz() -> HealthResponse:
        return HealthResponse()

    @app.get("/ready", response_model=ReadinessResponse)
    def ready() -> JSONResponse:
        store = app.state.entitlement_store
        try:
            is_ready = store is not None and store.ping()
        except EntitlementError:
            logger.warning("Readiness probe failed", exc_info=True)
            is_ready = False
        return JSONResponse(
            status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ready": is_ready},
        )

    return app


app = create_app()

# tenant_auth/main.py
import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import IntegrityError
from starlette.requests import Request

from tenant_auth.api.v1.router import api_router
from tenant_auth.core.config import settings
from tenant_auth.core.errors import AuthError
from tenant_auth.core.logging import setup_logging
from tenant_auth.db.bootstrap import run_migrations_and_seed
from tenant_auth.services.housekeeping import purge_loop

setup_logging()
logger = logging.getLogger(__name__)

api = FastAPI(
    title="Tenant Auth API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    swagger_ui_parameters={"displayRequestDuration": True, "persistAuthorization": True},
)

api.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,  # cookie de refresh exige origem explícita
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# métricas /metrics (Prometheus)
Instrumentator().instrument(api).expose(api, include_in_schema=False, should_gzip=True)

api.include_router(api_router, prefix="/api")


@api.get("/healthz", tags=["health"])
def healthz():
    return {"status": "ok"}


@api.on_event("startup")
async def startup():
    if settings.AUTO_MIGRATE:
        run_migrations_and_seed()
    if settings.SESSION_PURGE_INTERVAL_HOURS > 0:
        api.state.purge_task = asyncio.create_task(purge_loop(settings.SESSION_PURGE_INTERVAL_HOURS))


@api.on_event("shutdown")
async def shutdown():
    task = getattr(api.state, "purge_task", None)
    if task is not None:
        task.cancel()


@api.exception_handler(AuthError)
def handle_auth_error(request: Request, exc: AuthError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@api.exception_handler(IntegrityError)
def handle_integrity_error(request: Request, exc: IntegrityError):
    return JSONResponse(
        status_code=409,
        content={"code": "UNIQUE_VIOLATION", "message": "Registro duplicado.", "details": None},
    )


@api.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"code": "INTERNAL_ERROR", "message": "Erro interno.", "details": None},
    )

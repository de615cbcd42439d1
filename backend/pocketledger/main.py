from contextlib import asynccontextmanager

import psycopg
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pocketledger.core.config import settings
from pocketledger.core.log import configure_logging
from pocketledger.db.pool import apply_schema, close_db_pool, open_db_pool
from pocketledger.routers.auth import router as auth_router
from pocketledger.routers.cashflow import router as cashflow_router
from pocketledger.routers.users import router as users_router

configure_logging(settings.log_level, settings.log_json)
log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    open_db_pool()
    if settings.apply_schema:
        apply_schema()
    log.info("startup_complete")
    try:
        yield
    finally:
        close_db_pool()


app = FastAPI(title="pocketledger", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "accept"],
)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(cashflow_router)


def format_validation_errors(errors: list[dict]) -> str:
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        parts.append(f"{'.'.join(loc)}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


@app.exception_handler(StarletteHTTPException)
def http_exc_handler(_: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
def validation_exc_handler(_: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": format_validation_errors(exc.errors())})


@app.exception_handler(psycopg.Error)
def store_exc_handler(req: Request, exc: psycopg.Error):
    message = (exc.diag.message_primary if exc.diag else None) or str(exc)
    log.warning("store_error", path=req.url.path, method=req.method, error=message, sqlstate=exc.sqlstate)
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
def unexpected_exc_handler(req: Request, exc: Exception):
    log.exception("unhandled_error", path=req.url.path, method=req.method)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

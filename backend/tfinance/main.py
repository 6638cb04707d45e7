import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tfinance.core.config import settings
from tfinance.db.pool import close_db_pool, init_db, open_db_pool
from tfinance.routers.auth import router as auth_router
from tfinance.routers.files import router as files_router
from tfinance.routers.payment import router as payment_router
from tfinance.routers.user import router as user_router
from tfinance.services.payments import close_gateway

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    open_db_pool()
    try:
        init_db()
        logger.info("T-Finance API started (environment=%s)", settings.environment)
        yield
    finally:
        close_gateway()
        close_db_pool()


app = FastAPI(title="T-Finance API", lifespan=lifespan)

if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(auth_router)
app.include_router(payment_router)
app.include_router(user_router)
app.include_router(files_router)


@app.get("/health")
def health():
    return {"ok": True}


@app.exception_handler(StarletteHTTPException)
def http_exc_handler(_, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
def validation_exc_handler(_, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request data"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return JSONResponse(status_code=400, content={"ok": False, "message": message})


@app.exception_handler(Exception)
def unhandled_exc_handler(req: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", req.method, req.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"ok": False, "message": "Internal server error"})

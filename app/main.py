import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.config import settings
from app.core.database import close_store
from app.core.errors import (
    ConflictError,
    InternalError,
    MarketplaceError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from app.controllers import (
    buyer_controller,
    menu_controller,
    offer_controller,
    order_controller,
    request_controller,
    seller_controller,
    stream_controller,
)
from app.utils.response import error_response

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("main")

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_store()

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_BY_ERROR = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (TransientStoreError, 503),
)

def status_for(exc: MarketplaceError) -> int:
    for kind, status in STATUS_BY_ERROR:
        if isinstance(exc, kind):
            return status
    return 500

async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        # keep diagnostics in the log, not in the response
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.message)
        body = error_response(message="Service unavailable, please retry", error={"code": exc.code})
    else:
        body = error_response(message=exc.message, error={"code": exc.code})
    return JSONResponse(status_code=status, content=body.model_dump())

async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = error_response(message="Internal error", error={"code": InternalError.code})
    return JSONResponse(status_code=500, content=body.model_dump())

app.add_exception_handler(MarketplaceError, marketplace_error_handler)
app.add_exception_handler(Exception, unexpected_error_handler)

API_PREFIX = getattr(settings, "api_prefix", "/api")

# Include routers
app.include_router(request_controller.router, prefix=API_PREFIX)
app.include_router(offer_controller.router, prefix=API_PREFIX)
app.include_router(buyer_controller.router, prefix=API_PREFIX)
app.include_router(seller_controller.router, prefix=API_PREFIX)
app.include_router(menu_controller.router, prefix=API_PREFIX)
app.include_router(order_controller.router, prefix=API_PREFIX)
app.include_router(stream_controller.router, prefix=API_PREFIX)

# Health check endpoint
@app.get("/")
async def root():
    return {
        "message": "Marketplace Chat API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": [
            f"{API_PREFIX}/requests",
            f"{API_PREFIX}/seller/pick",
            f"{API_PREFIX}/buyer/buy",
            f"{API_PREFIX}/menus",
            f"{API_PREFIX}/orders",
            "/docs"
        ]
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name, "store": settings.store_backend}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug
    )
